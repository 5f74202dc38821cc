"""
Tests for the regex route table and its per-request state machine.
"""

import logging

import pytest

from fastapi_routecache.exceptions import (
    ErrorCode,
    InvalidRouteFlagError,
    RoutePatternError,
    UnknownPlaceholderError,
)
from fastapi_routecache.routing import (
    RequestContext,
    RouteOutcome,
    Router,
    RouteState,
    RouteTable,
    compile_pattern,
    normalize_limit,
    parse_flags,
)


class Dispatcher:
    """Records every page the router dispatches to."""

    def __init__(self):
        self.calls = []

    def __call__(self, page, context):
        self.calls.append((page, dict(context.query)))
        return f"rendered {page}"


@pytest.fixture
def dispatcher():
    return Dispatcher()


def make_router(uri, dispatcher=None, **kwargs):
    context = RequestContext(
        uri=uri,
        scheme="https",
        host="example.com",
        language="en",
        requested_language="nl",
        server_port=443,
        remote_port=51234,
    )
    return Router(context, dispatcher=dispatcher, **kwargs)


class TestRequestContext:

    def test_path_strips_query_and_leading_slash(self):
        context = RequestContext(uri="//en/users.html?page=2")
        assert context.path == "en/users.html"

    def test_query_parsed_from_uri(self):
        context = RequestContext(uri="/list?limit=10&sort=")
        assert context.query == {"limit": "10", "sort": ""}


class TestPatterns:

    def test_delimited_pattern_with_modifier(self):
        regex = compile_pattern(r"/^EN\/(\w+)$/i")
        assert regex.search("en/about").group(1) == "about"

    def test_alternative_delimiters(self):
        assert compile_pattern(r"#^a/b$#").search("a/b")
        assert compile_pattern(r"{^a/b$}").search("a/b")

    def test_empty_pattern_matches_empty_path(self):
        assert compile_pattern("").search("")
        assert not compile_pattern("").search("x")

    @pytest.mark.parametrize("pattern", [r"/^(unclosed$/", "^no-delimiter$", "/abc", r"/abc/q"])
    def test_malformed_patterns(self, pattern):
        with pytest.raises(RoutePatternError) as exc_info:
            compile_pattern(pattern)
        assert exc_info.value.code is ErrorCode.INVALID

    def test_route_table_rejects_malformed_pattern_up_front(self):
        with pytest.raises(RoutePatternError):
            RouteTable().add(r"/^(broken$/", "index")


class TestHelpers:

    def test_parse_flags(self):
        assert parse_flags(None) == []
        assert parse_flags("q, r302") == ["Q", "R302"]
        assert parse_flags(["Qpage;sort"]) == ["Qpage;sort"]

    @pytest.mark.parametrize(
        "value, expected",
        [("20", 20), ("9999", 500), ("0", None), ("-5", None), ("abc", None), (None, None)],
    )
    def test_normalize_limit(self, value, expected):
        assert normalize_limit(value) == expected


class TestRouter:

    def test_empty_path_dispatches_index(self, dispatcher):
        router = make_router("/", dispatcher)

        result = router.route("/^$/", "index")

        assert result.outcome is RouteOutcome.DISPATCHED
        assert result.page == "index"
        assert result.response == "rendered index"
        assert router.state is RouteState.DISPATCHED
        assert dispatcher.calls == [("index", {})]

    def test_capture_group_becomes_query_parameter(self, dispatcher):
        router = make_router("/user/42", dispatcher)

        result = router.route(r"/^user\/(\d+)$/", "profile?id=$1")

        assert result.page == "profile"
        assert result.query == {"id": "42"}
        assert router.context.query == {"id": "42"}

    def test_non_match_leaves_router_evaluating(self, dispatcher):
        router = make_router("/about", dispatcher)

        result = router.route("/^$/", "index")

        assert result.outcome is RouteOutcome.NO_MATCH
        assert not result.matched
        assert router.state is RouteState.EVALUATING
        assert dispatcher.calls == []

    def test_first_match_wins(self, dispatcher):
        router = make_router("/about", dispatcher)

        router.route(r"/^about$/", "about")
        second = router.route(r"/^a/", "other")

        assert second.page == "about"
        assert dispatcher.calls == [("about", {})]

    def test_finish_fires_not_found(self, dispatcher):
        not_found_calls = []
        router = make_router("/missing", dispatcher, not_found=lambda ctx: not_found_calls.append(ctx.uri) or "404 page")

        router.route("/^$/", "index")
        result = router.finish()

        assert result.outcome is RouteOutcome.NOT_FOUND
        assert result.status_code == 404
        assert result.response == "404 page"
        assert not_found_calls == ["/missing"]
        assert dispatcher.calls == []

    def test_finish_after_dispatch_returns_dispatched_result(self, dispatcher):
        router = make_router("/", dispatcher)
        router.route("/^$/", "index")

        assert router.finish().outcome is RouteOutcome.DISPATCHED

    def test_placeholders(self, dispatcher):
        router = make_router("/", dispatcher)

        result = router.route("/^$/", ":PROTOCOL:DOMAIN/:LANGUAGE/:REQUESTED_LANGUAGE", "R")

        assert result.location == "https://example.com/en/nl"

    def test_port_placeholders_are_distinct(self, dispatcher):
        router = make_router("/", dispatcher)

        result = router.route("/^$/", "ports?server=:PORT&also=:SERVER_PORT&remote=:REMOTE_PORT")

        assert result.query == {"server": "443", "also": "443", "remote": "51234"}

    def test_unknown_placeholder_is_fatal(self, dispatcher):
        router = make_router("/", dispatcher)

        with pytest.raises(UnknownPlaceholderError) as exc_info:
            router.route("/^$/", ":BOGUS/index")

        assert exc_info.value.code is ErrorCode.UNKNOWN
        assert dispatcher.calls == []

    def test_unknown_placeholder_in_unmatched_rule_is_not_evaluated(self, dispatcher):
        router = make_router("/about", dispatcher)

        assert router.route("/^$/", ":BOGUS").outcome is RouteOutcome.NO_MATCH

    def test_missing_capture_group_is_skipped(self, dispatcher, caplog):
        router = make_router("/a", dispatcher)

        with caplog.at_level(logging.WARNING, logger="fastapi_routecache.routing"):
            result = router.route(r"/^a(\d+)?$/", "list?n=$1&m=$5")

        assert result.page == "list"
        assert result.query == {"n": "", "m": ""}
        assert "$5" in caplog.text

    def test_multi_digit_backreferences(self, dispatcher):
        pattern = "/^" + "(.)" * 11 + "$/"
        router = make_router("/abcdefghijk", dispatcher)

        result = router.route(pattern, "page?first=$1&eleventh=$11")

        assert result.query == {"first": "a", "eleventh": "k"}

    def test_redirect_301_stops_evaluation(self, dispatcher):
        router = make_router("/old/page", dispatcher)

        result = router.route(r"/^old\/(.*)$/", "https://example.com/new/$1", "R301")
        later = router.route(r"/.*/", "catchall")

        assert result.outcome is RouteOutcome.REDIRECT
        assert result.status_code == 301
        assert result.location == "https://example.com/new/page"
        assert later is result
        assert dispatcher.calls == []

    def test_redirect_defaults_to_301_and_accepts_302(self, dispatcher):
        assert make_router("/x").route("/x/", "/y", "R").status_code == 301
        assert make_router("/x").route("/x/", "/y", "r302").status_code == 302

    def test_invalid_redirect_code(self):
        with pytest.raises(InvalidRouteFlagError):
            make_router("/x").route("/x/", "/y", "R303")

    def test_redirect_carries_permitted_query(self):
        router = make_router("/x?a=1&limit=5")

        assert router.route("/x/", "/y", "R").location == "/y?limit=5"
        assert make_router("/x?a=1").route("/x/", "/y?b=2", "Q,R302").location == "/y?b=2&a=1"

    def test_without_q_only_limit_survives(self, dispatcher):
        router = make_router("/users?page=3&limit=9999&sort=name", dispatcher)

        result = router.route(r"/^users$/", "users")

        assert result.query == {"limit": "500"}

    def test_q_passes_query_through(self, dispatcher):
        router = make_router("/users?page=3&sort=name", dispatcher)

        result = router.route(r"/^users$/", "users?sort=id", "Q")

        assert result.query == {"page": "3", "sort": "id"}

    def test_q_with_allowed_keys(self, dispatcher):
        router = make_router("/users?page=3&sort=name&limit=10", dispatcher)

        result = router.route(r"/^users$/", "users", "Qpage")

        assert result.query == {"limit": "10", "page": "3"}

    def test_unknown_flags_are_ignored(self, dispatcher):
        router = make_router("/users?page=3", dispatcher)

        result = router.route(r"/^users$/", "users", "X,B,Q")

        assert result.outcome is RouteOutcome.DISPATCHED
        assert result.query == {"page": "3"}

    def test_missing_dynamic_page_continues_evaluation(self, dispatcher):
        router = make_router("/blog", dispatcher, page_exists={"pages/blog", "fallback"}.__contains__)

        assert router.route(r"/^(\w+)$/", "$1").outcome is RouteOutcome.NO_MATCH
        assert router.state is RouteState.EVALUATING

        result = router.route(r"/^(\w+)$/", "pages/$1")
        assert result.page == "pages/blog"

    def test_missing_hard_coded_page_is_not_found(self, dispatcher):
        router = make_router("/about", dispatcher, page_exists=lambda page: False)

        result = router.route(r"/^about$/", "about")

        assert result.outcome is RouteOutcome.NOT_FOUND
        assert router.state is RouteState.DISPATCHED
        assert dispatcher.calls == []

    def test_failing_page_leaves_router_unsettled(self):
        def broken(page, context):
            raise RuntimeError("template error")

        router = make_router("/", broken)

        with pytest.raises(RuntimeError):
            router.route("/^$/", "index")

        assert router.state is RouteState.EVALUATING
        assert router.result is None
        assert router.finish().outcome is RouteOutcome.NOT_FOUND

    def test_host_header_is_not_expanded_as_backreference(self, dispatcher):
        context = RequestContext(uri="/go/docs", host="$1.example.com")
        router = Router(context, dispatcher=dispatcher)

        result = router.route(r"/^go\/(.*)$/", ":PROTOCOL:DOMAIN/$1", "R302")

        assert result.location == "http://$1.example.com/docs"

    def test_host_header_does_not_make_target_dynamic(self, dispatcher):
        context = RequestContext(uri="/about", host="$1")
        router = Router(context, dispatcher=dispatcher, page_exists=lambda page: False)

        result = router.route(r"/^(about)$/", ":DOMAIN")

        assert result.outcome is RouteOutcome.NOT_FOUND

    def test_captured_text_is_not_expanded_as_placeholder(self, dispatcher):
        router = make_router("/:BOGUS", dispatcher)

        result = router.route(r"/^(.*)$/", "page?q=$1")

        assert result.query == {"q": ":BOGUS"}

    def test_overlong_uri_is_not_found(self, dispatcher):
        router = make_router("/" + "a" * 2049, dispatcher)

        assert router.route("/a+/", "anything").outcome is RouteOutcome.NOT_FOUND


class TestRouteTable:

    @pytest.fixture
    def table(self):
        return RouteTable(
            [
                ("/^$/", "index"),
                (r"/^user\/(\d+)$/", "profile?id=$1"),
                (r"/^([a-z]{2})\/([-a-z]+)\.html$/", "$1/$2", "Q"),
                (r"/^go\/(.*)$/", ":PROTOCOL:DOMAIN/$1", "R302"),
            ]
        )

    def test_resolves_in_order(self, table, dispatcher):
        result = table.resolve(RequestContext(uri="/user/7"), dispatcher=dispatcher)

        assert result.page == "profile"
        assert result.query == {"id": "7"}
        assert len(dispatcher.calls) == 1

    def test_exactly_one_rule_or_not_found(self, table, dispatcher):
        pages = {"index", "profile", "en/about"}
        for uri in ["/", "/user/1", "/en/about.html", "/go/x", "/nope", "/en/missing.html"]:
            dispatcher.calls.clear()
            result = table.resolve(RequestContext(uri=uri), dispatcher=dispatcher, page_exists=pages.__contains__)

            if result.outcome is RouteOutcome.DISPATCHED:
                assert len(dispatcher.calls) == 1
            else:
                assert dispatcher.calls == []
                assert result.outcome in (RouteOutcome.REDIRECT, RouteOutcome.NOT_FOUND)

    def test_unmatched_request_is_not_found(self, table):
        assert table.resolve(RequestContext(uri="/nothing/here")).outcome is RouteOutcome.NOT_FOUND

    def test_redirect_rule(self, table):
        result = table.resolve(RequestContext(uri="/go/docs", host="example.org"))

        assert result.status_code == 302
        assert result.location == "http://example.org/docs"
