from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
	"""Error classes shared by the cache and the router."""
	NOT_SPECIFIED = "not-specified"
	UNKNOWN = "unknown"
	INVALID = "invalid"
	NOT_EXISTS = "not-exists"


class CacheError(RuntimeError):
	"""Base exception for cache-related errors."""

	default_code: Optional[ErrorCode] = None

	def __init__(self, message: str, code: Optional[ErrorCode] = None) -> None:
		super().__init__(message)
		self.code = code or self.default_code


class CacheNotInitializedError(CacheError):
	"""Raised when the cache is used before CacheConfig.init()."""


class CacheConfigError(CacheError):
	"""Raised when there is a configuration error in the cache setup."""


class CacheWriteError(CacheError):
	"""Raised by a backend that failed to persist a value."""


class RoutingError(RuntimeError):
	"""Base exception for route table errors."""

	default_code: Optional[ErrorCode] = None

	def __init__(self, message: str, code: Optional[ErrorCode] = None) -> None:
		super().__init__(message)
		self.code = code or self.default_code


class UnknownPlaceholderError(RoutingError):
	"""Raised when a route target contains an unsupported :PLACEHOLDER."""

	default_code = ErrorCode.UNKNOWN


class RoutePatternError(RoutingError):
	"""Raised when a route pattern is not a valid regular expression."""

	default_code = ErrorCode.INVALID


class InvalidRouteFlagError(RoutingError):
	"""Raised for a recognised flag carrying an unsupported value (e.g. R303)."""

	default_code = ErrorCode.INVALID


__all__ = [
	"ErrorCode",
	"CacheError",
	"CacheNotInitializedError",
	"CacheConfigError",
	"CacheWriteError",
	"RoutingError",
	"UnknownPlaceholderError",
	"RoutePatternError",
	"InvalidRouteFlagError",
]
