from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, ParamSpec, TypeVar, cast

from fastapi_routecache.cache import Cache, get_cache
from fastapi_routecache.key_builder import ArgumentKeyBuilder
from fastapi_routecache.serializer import deserialize, serialize

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

_DEFAULT_EXCLUDED = {"request", "response", "db", "session", "self"}
_argument_keys = ArgumentKeyBuilder()


def _ensure_async(func: Callable[..., Any]) -> None:
	if not inspect.iscoroutinefunction(func):
		raise TypeError(
			f"Cache decorators require an async function; got {func.__qualname__}."
		)


async def _maybe_await_bool(value: bool | Awaitable[bool]) -> bool:
	if inspect.isawaitable(value):
		return cast(bool, await cast(Awaitable[bool], value))
	return cast(bool, value)


def _build_cache_key(
	*,
	func: Callable[..., Any],
	args: tuple[Any, ...],
	kwargs: dict[str, Any],
	key: Optional[str],
	excluded_params: Optional[set[str]],
) -> str:
	excluded = excluded_params if excluded_params is not None else _DEFAULT_EXCLUDED
	call_key = _argument_keys.build(func, args, kwargs, excluded)

	# An explicit key replaces the function identity but keeps the argument hash.
	if key is not None:
		return f"{key}:{call_key.rsplit(':', 1)[1]}"
	return call_key


def cacheable(
	*,
	namespace: str,
	key: Optional[str] = None,
	max_age: Optional[int] = None,
	condition: Optional[Callable[..., bool] | Callable[..., Awaitable[bool]]] = None,
	unless: Optional[Callable[[Any], bool] | Callable[[Any], Awaitable[bool]]] = None,
	excluded_params: Optional[set[str]] = None,
	cache: Optional[Cache] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
	"""Read-through cache decorator.

	Reads from cache first; on miss executes the function and stores the result.
	"""

	def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
		_ensure_async(func)

		@functools.wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			active = cache or get_cache()

			if condition is not None:
				if not await _maybe_await_bool(condition(*args, **kwargs)):
					logger.debug(
						"cacheable(%s): condition false; bypass cache for %s",
						namespace,
						func.__qualname__,
					)
					return await func(*args, **kwargs)

			cache_key = _build_cache_key(
				func=func,
				args=cast(tuple[Any, ...], args),
				kwargs=cast(dict[str, Any], kwargs),
				key=key,
				excluded_params=excluded_params,
			)

			cached = await active.read(cache_key, namespace)
			if cached is not None:
				try:
					return cast(R, deserialize(cached))
				except ValueError:
					logger.exception("cacheable(%s): stored value unreadable", namespace)

			result = await func(*args, **kwargs)

			if unless is not None and await _maybe_await_bool(unless(result)):
				return result

			try:
				data = serialize(result)
			except ValueError:
				logger.exception("cacheable(%s): result not serializable", namespace)
				return result

			await active.write(data, cache_key, namespace, max_age)
			return result

		return wrapper

	return decorator


def cache_put(
	*,
	namespace: str,
	key: Optional[str] = None,
	max_age: Optional[int] = None,
	condition: Optional[Callable[..., bool] | Callable[..., Awaitable[bool]]] = None,
	unless: Optional[Callable[[Any], bool] | Callable[[Any], Awaitable[bool]]] = None,
	excluded_params: Optional[set[str]] = None,
	cache: Optional[Cache] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
	"""Always executes the function; then stores the result (unless skipped)."""

	def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
		_ensure_async(func)

		@functools.wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			active = cache or get_cache()
			result = await func(*args, **kwargs)

			if condition is not None and not await _maybe_await_bool(condition(*args, **kwargs)):
				return result

			if unless is not None and await _maybe_await_bool(unless(result)):
				return result

			cache_key = _build_cache_key(
				func=func,
				args=cast(tuple[Any, ...], args),
				kwargs=cast(dict[str, Any], kwargs),
				key=key,
				excluded_params=excluded_params,
			)

			try:
				data = serialize(result)
			except ValueError:
				logger.exception("cache_put(%s): result not serializable", namespace)
				return result

			await active.write(data, cache_key, namespace, max_age)
			return result

		return wrapper

	return decorator


def cache_evict(
	*,
	namespace: str,
	key: Optional[str] = None,
	all_entries: bool = False,
	before_invocation: bool = False,
	condition: Optional[Callable[..., bool] | Callable[..., Awaitable[bool]]] = None,
	excluded_params: Optional[set[str]] = None,
	cache: Optional[Cache] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
	"""Removes the entry for the call (or the whole namespace) around the function."""

	def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
		_ensure_async(func)

		async def _evict(*args: P.args, **kwargs: P.kwargs) -> None:
			active = cache or get_cache()

			if all_entries:
				await active.clear(namespace=namespace)
				return

			cache_key = _build_cache_key(
				func=func,
				args=cast(tuple[Any, ...], args),
				kwargs=cast(dict[str, Any], kwargs),
				key=key,
				excluded_params=excluded_params,
			)
			await active.clear(cache_key, namespace)

		@functools.wraps(func)
		async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
			if condition is not None and not await _maybe_await_bool(condition(*args, **kwargs)):
				return await func(*args, **kwargs)

			if before_invocation:
				try:
					await _evict(*args, **kwargs)
				except Exception:
					logger.exception("cache_evict(%s): eviction failed before invocation", namespace)

			result = await func(*args, **kwargs)

			if not before_invocation:
				try:
					await _evict(*args, **kwargs)
				except Exception:
					logger.exception("cache_evict(%s): eviction failed after invocation", namespace)

			return result

		return wrapper

	return decorator
