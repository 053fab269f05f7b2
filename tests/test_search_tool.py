from __future__ import annotations

import httpx
import pytest

from llm_agent.gate import CancelToken
from llm_agent.tools import ToolError, make_search_handler


BASE = "https://search.example.test/customsearch/v1"


def _handler(responder, *, api_key: str = "k", engine_id: str = "cx1"):
    seen: list[httpx.Request] = []

    def _transport(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responder(request)

    h = make_search_handler(
        api_key=api_key,
        engine_id=engine_id,
        base_url=BASE,
        transport=httpx.MockTransport(_transport),
    )
    return h, seen


def test_search_maps_items() -> None:
    body = {
        "searchInformation": {"totalResults": "1234", "searchTime": 0.21},
        "items": [
            {"title": "Python", "link": "https://python.org", "snippet": "Home", "displayLink": "python.org"},
            {"title": "Docs", "link": "https://docs.python.org", "snippet": "Docs", "displayLink": "docs.python.org"},
        ],
    }
    h, seen = _handler(lambda req: httpx.Response(200, json=body))
    out = h({"query": "python", "num_results": 2})

    assert out["query"] == "python"
    assert out["total_results"] == "1234"
    assert out["search_time"] == 0.21
    assert out["results"][0] == {
        "title": "Python",
        "link": "https://python.org",
        "snippet": "Home",
        "display_link": "python.org",
    }
    params = seen[0].url.params
    assert params["key"] == "k"
    assert params["cx"] == "cx1"
    assert params["q"] == "python"
    assert params["num"] == "2"
    assert params["start"] == "1"


def test_search_clamps_num_results() -> None:
    h, seen = _handler(lambda req: httpx.Response(200, json={"items": []}))
    h({"query": "x", "num_results": 50})
    h({"query": "x", "num_results": 0})
    assert [r.url.params["num"] for r in seen] == ["10", "1"]


def test_search_zero_results() -> None:
    h, _ = _handler(lambda req: httpx.Response(200, json={"searchInformation": {"totalResults": "0"}}))
    assert h({"query": "zzzz"}) == {"query": "zzzz", "results": [], "message": "No results found"}


def test_search_api_error_body() -> None:
    h, _ = _handler(lambda req: httpx.Response(403, json={"error": {"code": 403, "message": "quota exceeded"}}))
    with pytest.raises(ToolError, match="quota exceeded"):
        h({"query": "x"})


def test_search_http_error_without_body() -> None:
    h, _ = _handler(lambda req: httpx.Response(502, text="bad gateway"))
    with pytest.raises(ToolError, match="HTTP 502"):
        h({"query": "x"})


def test_search_not_configured() -> None:
    h, seen = _handler(lambda req: httpx.Response(200, json={}), api_key="")
    with pytest.raises(ToolError, match="not configured"):
        h({"query": "x"})
    assert seen == []


def test_search_runs_under_token() -> None:
    h, _ = _handler(lambda req: httpx.Response(200, json={"items": [{"title": "t", "link": "l"}]}))
    out = h({"query": "x"}, token=CancelToken())
    assert out["results"][0]["title"] == "t"
    assert out["results"][0]["snippet"] == ""
