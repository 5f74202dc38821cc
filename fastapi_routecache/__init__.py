from fastapi_routecache.cache import Cache, get_cache
from fastapi_routecache.config import CacheConfig, CacheSettings, create_backend
from fastapi_routecache.decorators import cacheable, cache_evict, cache_put
from fastapi_routecache.exceptions import (
	CacheConfigError,
	CacheError,
	CacheNotInitializedError,
	CacheWriteError,
	ErrorCode,
	InvalidRouteFlagError,
	RoutePatternError,
	RoutingError,
	UnknownPlaceholderError,
)
from fastapi_routecache.integration import mount_route_table
from fastapi_routecache.key_builder import ArgumentKeyBuilder, HashedKeyBuilder, KeyBuilder
from fastapi_routecache.routing import (
	RequestContext,
	RouteOutcome,
	RouteResult,
	Router,
	RouteState,
	RouteTable,
)
from fastapi_routecache.serializer import SerializationFormat

__all__ = [
	"Cache",
	"get_cache",
	"CacheConfig",
	"CacheSettings",
	"create_backend",
	"cacheable",
	"cache_evict",
	"cache_put",
	"CacheConfigError",
	"CacheError",
	"CacheNotInitializedError",
	"CacheWriteError",
	"ErrorCode",
	"InvalidRouteFlagError",
	"RoutePatternError",
	"RoutingError",
	"UnknownPlaceholderError",
	"mount_route_table",
	"ArgumentKeyBuilder",
	"HashedKeyBuilder",
	"KeyBuilder",
	"RequestContext",
	"RouteOutcome",
	"RouteResult",
	"Router",
	"RouteState",
	"RouteTable",
	"SerializationFormat",
]
