# fastapi_routecache/integration.py

import inspect
import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse, Response

from fastapi_routecache.cache import Cache
from fastapi_routecache.routing import RequestContext, RouteOutcome, RouteTable

logger = logging.getLogger(__name__)

PageHandler = Callable[[Request, RequestContext], Any]

NOT_FOUND_BODY = "404 - The requested page does not exist"


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        value = await value
    if isinstance(value, str):
        return HTMLResponse(value)
    return value


def mount_route_table(
    app: FastAPI,
    table: RouteTable,
    pages: Mapping[str, PageHandler],
    *,
    not_found: Optional[PageHandler] = None,
    cache: Optional[Cache] = None,
    path: str = "/{path:path}",
    methods: Sequence[str] = ("GET", "POST"),
    max_limit: Optional[int] = None,
) -> None:
    """
    Register a catch-all endpoint on ``app`` that answers requests through ``table``.

    ``pages`` maps page identifiers (route targets without their query) to
    handlers called as ``handler(request, context)``; handlers may be sync or
    async and may return a Response, a string of HTML, or anything FastAPI
    can serialize. When ``cache`` is given, cached pages are served before
    routing for GET requests.
    """

    async def endpoint(request: Request):
        if cache is not None and request.method == "GET":
            cached = await cache.show_page(request)
            if cached is not None:
                return cached

        router_kwargs: dict[str, Any] = {
            "page_exists": pages.__contains__,
            "dispatcher": lambda page, context: pages[page](request, context),
        }
        if not_found is not None:
            router_kwargs["not_found"] = lambda context: not_found(request, context)
        if max_limit is not None:
            router_kwargs["max_limit"] = max_limit

        result = table.resolve(RequestContext.from_request(request), **router_kwargs)

        if result.outcome is RouteOutcome.REDIRECT:
            return RedirectResponse(result.location, status_code=result.status_code)

        if result.outcome is RouteOutcome.NOT_FOUND:
            response = await _resolve(result.response)
            if isinstance(response, Response):
                response.status_code = 404
                return response
            return HTMLResponse(NOT_FOUND_BODY, status_code=404)

        return await _resolve(result.response)

    app.add_api_route(path, endpoint, methods=list(methods), include_in_schema=False)
    logger.debug("mounted route table with %d rules at %s", len(table), path)
