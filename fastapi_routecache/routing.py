# fastapi_routecache/routing.py

"""
Regex route table.

Rules are tried in the order the application registers them. The first rule
whose pattern matches the request path is dispatched and ends evaluation; if
no rule is ever accepted the 404 fallback fires when the table is finished.

Patterns are written with delimiters and optional modifiers, as in
``/^user\\/(\\d+)$/i``. Targets may contain request placeholders
(``:PROTOCOL``, ``:DOMAIN``, ``:LANGUAGE`` ...) and ``$N`` references to
capture groups::

    table = RouteTable()
    table.add(r"/^$/", "index")
    table.add(r"/^user\\/(\\d+)$/", "profile?id=$1")
    table.add(r"/^old\\/(.*)$/", ":PROTOCOL:DOMAIN/$1", "R301")
"""

import functools
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union
from urllib.parse import parse_qsl, urlencode

from starlette.requests import Request

from fastapi_routecache.exceptions import (
    InvalidRouteFlagError,
    RoutePatternError,
    UnknownPlaceholderError,
)

logger = logging.getLogger(__name__)

MAX_URI_LENGTH = 2048
DEFAULT_MAX_LIMIT = 500

Flags = Union[str, Sequence[str], None]
PageExists = Callable[[str], bool]
Dispatcher = Callable[[str, "RequestContext"], Any]
NotFoundHandler = Callable[["RequestContext"], Any]

_BACKREFERENCE = re.compile(r"\$(\d+)")
_TARGET_TOKEN = re.compile(r":([A-Z_]+)|\$(\d+)")
_MODIFIERS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    "u": 0,
}
_CLOSING_DELIMITERS = {"(": ")", "{": "}", "[": "]", "<": ">"}


class RouteState(str, Enum):
    EVALUATING = "evaluating"
    DISPATCHED = "dispatched"


class RouteOutcome(str, Enum):
    NO_MATCH = "no-match"
    DISPATCHED = "dispatched"
    REDIRECT = "redirect"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class RouteResult:
    outcome: RouteOutcome
    page: Optional[str] = None
    query: Mapping[str, str] = field(default_factory=dict)
    location: Optional[str] = None
    status_code: Optional[int] = None
    response: Any = None

    @property
    def matched(self) -> bool:
        return self.outcome is not RouteOutcome.NO_MATCH


NO_MATCH = RouteResult(RouteOutcome.NO_MATCH)


@dataclass(frozen=True)
class RouteRule:
    pattern: str
    target: str
    flags: Flags = None


def _first_language(accept_language: str) -> Optional[str]:
    """Return the preferred primary language tag of an Accept-Language header."""
    best, best_q = None, -1.0
    for entry in accept_language.split(","):
        tag, _, params = entry.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        q = 1.0
        params = params.strip()
        if params.startswith("q="):
            try:
                q = float(params[2:])
            except ValueError:
                q = 0.0
        if q > best_q:
            best, best_q = tag, q
    return best.split("-")[0].lower() if best else None


@dataclass
class RequestContext:
    """
    The parts of an incoming request the router reads and writes.

    ``query`` is replaced with the routed query parameters once a rule is
    accepted.
    """

    uri: str = "/"
    query: dict[str, str] = field(default_factory=dict)
    scheme: str = "http"
    host: str = "localhost"
    language: str = "en"
    requested_language: Optional[str] = None
    server_port: Optional[int] = None
    remote_port: Optional[int] = None
    method: str = "GET"

    def __post_init__(self) -> None:
        if not self.query and "?" in self.uri:
            self.query = dict(parse_qsl(self.uri.split("?", 1)[1], keep_blank_values=True))

    @property
    def path(self) -> str:
        """Request path without query string and leading slashes."""
        return self.uri.split("?", 1)[0].lstrip("/")

    @classmethod
    def from_request(
        cls,
        request: Request,
        *,
        language: Optional[str] = None,
        default_language: str = "en",
    ) -> "RequestContext":
        url = request.url
        requested = _first_language(request.headers.get("accept-language", ""))
        uri = url.path + (f"?{url.query}" if url.query else "")

        return cls(
            uri=uri,
            query=dict(request.query_params),
            scheme=url.scheme,
            host=request.headers.get("host") or url.netloc,
            language=language or requested or default_language,
            requested_language=requested or default_language,
            server_port=url.port or (443 if url.scheme == "https" else 80),
            remote_port=request.client.port if request.client else None,
            method=request.method,
        )


@functools.lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """
    Compile a delimited route pattern such as ``/^en\\/(\\w+)$/i``.

    An empty pattern matches the empty path.

    Raises:
        RoutePatternError: If the pattern is malformed
    """
    if not pattern:
        return re.compile(r"^$")

    delimiter = pattern[0]
    if delimiter.isalnum() or delimiter.isspace() or delimiter == "\\":
        raise RoutePatternError(
            f"Route pattern {pattern!r} must start with a delimiter like '/'"
        )

    closing = _CLOSING_DELIMITERS.get(delimiter, delimiter)
    end = pattern.rfind(closing)
    if end <= 0:
        raise RoutePatternError(
            f"Route pattern {pattern!r} has no ending delimiter {closing!r}"
        )

    flags = 0
    for modifier in pattern[end + 1:]:
        if modifier not in _MODIFIERS:
            raise RoutePatternError(
                f"Unknown modifier {modifier!r} in route pattern {pattern!r}"
            )
        flags |= _MODIFIERS[modifier]

    try:
        return re.compile(pattern[1:end], flags)
    except re.error as e:
        raise RoutePatternError(
            f"Route pattern {pattern!r} is not a valid regular expression: {e}"
        ) from e


def parse_flags(flags: Flags) -> list[str]:
    """Split a flag list (``"Q,R301"`` or a sequence) into individual flags."""
    if not flags:
        return []
    if isinstance(flags, str):
        flags = flags.split(",")

    parsed = []
    for flag in flags:
        flag = flag.strip()
        if flag:
            parsed.append(flag[0].upper() + flag[1:])
    return parsed


def normalize_limit(value: Any, max_limit: int = DEFAULT_MAX_LIMIT) -> Optional[int]:
    """Return ``value`` as a page size in 1..max_limit, or None if unusable."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return None
    if limit < 1:
        return None
    return min(limit, max_limit)


def _port(value: Optional[int]) -> str:
    return "" if value is None else str(value)


_PLACEHOLDERS: dict[str, Callable[[RequestContext], str]] = {
    "PROTOCOL": lambda ctx: f"{ctx.scheme}://",
    "DOMAIN": lambda ctx: ctx.host,
    "LANGUAGE": lambda ctx: ctx.language,
    "REQUESTED_LANGUAGE": lambda ctx: ctx.requested_language or ctx.language,
    "PORT": lambda ctx: _port(ctx.server_port),
    "SERVER_PORT": lambda ctx: _port(ctx.server_port),
    "REMOTE_PORT": lambda ctx: _port(ctx.remote_port),
}


def _placeholder_value(name: str, context: RequestContext, target: str) -> str:
    resolver = _PLACEHOLDERS.get(name)
    if resolver is None:
        raise UnknownPlaceholderError(
            f"Unknown variable ':{name}' found in target {target!r}"
        )
    return resolver(context)


def _group_value(index: int, match: "re.Match[str]", target: str) -> str:
    value = match.group(index) if 0 < index <= len(match.groups()) else None
    if not value:
        logger.warning(
            "ignoring non existing regex replacement $%d in route %r", index, target
        )
        return ""
    return value


def expand_target(target: str, context: RequestContext, match: "re.Match[str]") -> str:
    """
    Expand placeholders and ``$N`` references of ``target`` in a single pass.

    Substituted values are not scanned again. Unknown placeholders raise
    UnknownPlaceholderError; missing or empty groups are logged and removed.
    """

    def replace(token: "re.Match[str]") -> str:
        if token.group(1) is not None:
            return _placeholder_value(token.group(1), context, target)
        return _group_value(int(token.group(2)), match, target)

    return _TARGET_TOKEN.sub(replace, target)


def _add_query(url: str, query: Mapping[str, str]) -> str:
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(query)}"


class Router:
    """
    Evaluates route rules for a single request.

    The router starts EVALUATING with the 404 fallback armed. The first
    accepted rule (dispatch, redirect or hard 404) moves it to DISPATCHED,
    after which further ``route()`` calls return the settled result
    without evaluating anything.
    """

    def __init__(
        self,
        context: RequestContext,
        *,
        page_exists: Optional[PageExists] = None,
        dispatcher: Optional[Dispatcher] = None,
        not_found: Optional[NotFoundHandler] = None,
        max_limit: int = DEFAULT_MAX_LIMIT,
        max_uri_length: int = MAX_URI_LENGTH,
    ) -> None:
        self.context = context
        self.page_exists = page_exists
        self.dispatcher = dispatcher
        self.not_found = not_found
        self.max_limit = max_limit
        self.max_uri_length = max_uri_length
        self._state = RouteState.EVALUATING
        self._result: Optional[RouteResult] = None
        self._count = 0
        logger.debug("processing routes for %s request %r", context.method, context.uri)

    @property
    def state(self) -> RouteState:
        return self._state

    @property
    def result(self) -> Optional[RouteResult]:
        return self._result

    def route(self, pattern: str, target: str, flags: Flags = None) -> RouteResult:
        """
        Try one rule against the request.

        Returns NO_MATCH when the rule does not apply; any other outcome
        settles the request.
        """
        if self._state is RouteState.DISPATCHED:
            return self._result

        self._count += 1
        path = self.context.path

        if len(path) > self.max_uri_length:
            logger.warning(
                "requested URI has %d characters where %d is the limit, 404-ing the request",
                len(path),
                self.max_uri_length,
            )
            return self._fire_not_found()

        regex = compile_pattern(pattern)
        match = regex.search(path)
        logger.debug("testing rule %d %r on %r", self._count, pattern, path)

        if match is None:
            return NO_MATCH

        logger.debug("rule %d %r matched with groups %r", self._count, pattern, match.groups())

        dynamic = _BACKREFERENCE.match(target) is not None
        route = expand_target(target, self.context, match)

        permitted = self._default_query()
        for flag in parse_flags(flags):
            kind, argument = flag[0], flag[1:]
            if kind == "Q":
                permitted = self._passthrough_query(argument)
            elif kind == "R":
                return self._redirect(route, target, argument, permitted)

        page, _, query_string = route.partition("?")

        if self.page_exists is not None and not self.page_exists(page):
            if dynamic:
                logger.info("dynamically matched page %r does not exist", page)
                return NO_MATCH

            logger.warning("matched hard coded page %r does not exist", page)
            return self._fire_not_found()

        query = dict(permitted)
        query.update(parse_qsl(query_string, keep_blank_values=True))
        return self._dispatch(page, query)

    def finish(self) -> RouteResult:
        """Fire the 404 fallback unless a rule already settled the request."""
        if self._state is RouteState.DISPATCHED:
            return self._result

        logger.info("no route matched %r", self.context.uri)
        return self._fire_not_found()

    def _default_query(self) -> dict[str, str]:
        limit = normalize_limit(self.context.query.get("limit"), self.max_limit)
        return {} if limit is None else {"limit": str(limit)}

    def _passthrough_query(self, argument: str) -> dict[str, str]:
        if not argument:
            return dict(self.context.query)

        allowed = {key for key in argument.split(";") if key}
        permitted = self._default_query()
        permitted.update(
            (key, value) for key, value in self.context.query.items() if key in allowed
        )
        return permitted

    def _redirect(
        self, route: str, target: str, code: str, query: Mapping[str, str]
    ) -> RouteResult:
        if code not in ("", "301", "302"):
            raise InvalidRouteFlagError(
                f"Invalid R flag HTTP code {code!r} specified for target {target!r}"
            )

        location = _add_query(route, query)
        status_code = int(code or 301)
        logger.info("redirecting to %r with HTTP code %d", location, status_code)

        return self._settle(
            RouteResult(
                RouteOutcome.REDIRECT,
                query=dict(query),
                location=location,
                status_code=status_code,
            )
        )

    def _dispatch(self, page: str, query: dict[str, str]) -> RouteResult:
        self.context.query = query
        logger.debug("executing page %r with query %r", page, query)

        response = self.dispatcher(page, self.context) if self.dispatcher else None
        return self._settle(
            RouteResult(RouteOutcome.DISPATCHED, page=page, query=query, response=response)
        )

    def _fire_not_found(self) -> RouteResult:
        response = self.not_found(self.context) if self.not_found else None
        return self._settle(
            RouteResult(RouteOutcome.NOT_FOUND, status_code=404, response=response)
        )

    def _settle(self, result: RouteResult) -> RouteResult:
        self._state = RouteState.DISPATCHED
        self._result = result
        return result


class RouteTable:
    """Ordered list of route rules, evaluated first match wins."""

    def __init__(self, rules: Iterable[Sequence[Any]] = ()) -> None:
        self.rules: list[RouteRule] = []
        for rule in rules:
            self.add(*rule)

    def add(self, pattern: str, target: str, flags: Flags = None) -> "RouteTable":
        # Fail on a malformed pattern when the table is built, not per request.
        compile_pattern(pattern)
        self.rules.append(RouteRule(pattern, target, flags))
        return self

    def __len__(self) -> int:
        return len(self.rules)

    def resolve(self, context: RequestContext, **router_kwargs: Any) -> RouteResult:
        router = Router(context, **router_kwargs)

        for rule in self.rules:
            result = router.route(rule.pattern, rule.target, rule.flags)
            if router.state is RouteState.DISPATCHED:
                return result

        return router.finish()
