import logging

import pytest

from chatrelay.app.proxy.citations import (
    extract_gemini_results,
    extract_openai_results,
    normalize_search_results,
    substitute_citations,
)
from chatrelay.app.proxy.models import filter_model_list, is_restricted_model
from chatrelay.app.proxy.streaming import ChunkRewriter, SSEEvent, encode_sse_event, linkify_urls

RESULTS = [
    {"title": "First", "url": "https://one.example/"},
    {"title": "Second [draft]", "url": "https://two.example/"},
]


@pytest.mark.parametrize(
    "model_id, restricted",
    [
        ("gpt-4", True),
        ("gpt-4-turbo", True),
        ("gpt-4o", True),
        ("chatgpt-4o-latest", True),
        ("o1-mini", True),
        ("o3", True),
        ("gpt-4o-mini", False),
        ("gpt-4o-mini-2024-07-18", False),
        ("gpt-3.5-turbo", False),
        ("dall-e-3", False),
    ],
)
def test_restricted_model_prefixes(model_id: str, restricted: bool):
    assert is_restricted_model(model_id) is restricted


def test_model_filter_is_idempotent():
    payload = {"data": [{"id": "gpt-4-x"}, {"id": "gpt-4o-mini"}, {"id": "gpt-3.5"}, {"object": "model"}]}
    assert filter_model_list(payload) is True
    once = [dict(model) for model in payload["data"]]

    assert filter_model_list(payload) is False
    assert payload["data"] == once == [{"id": "gpt-4o-mini"}, {"id": "gpt-3.5"}, {"object": "model"}]


def test_model_filter_ignores_payload_without_data_list():
    payload = {"data": "nope"}
    assert filter_model_list(payload) is False
    assert payload == {"data": "nope"}


def test_citations_are_substituted():
    text = "A [citation:0], B [citation:1]."
    assert substitute_citations(text, RESULTS) == (
        "A [First](https://one.example/), B [Second (draft)](https://two.example/)."
    )


def test_out_of_range_citation_warns_once_per_placeholder(caplog: pytest.LogCaptureFixture):
    with caplog.at_level(logging.WARNING):
        result = substitute_citations("x [citation:5] y [citation:0] z [citation:9]", RESULTS)

    assert result == "x [citation:5] y [First](https://one.example/) z [citation:9]"
    warnings = [r for r in caplog.records if "citation placeholder out of range" in r.getMessage()]
    assert len(warnings) == 2


def test_normalize_search_results_accepts_common_shapes():
    raw = [
        {"title": "T", "url": "https://t.example/"},
        {"uri": "https://u.example/"},
        {"title": "L", "link": "https://l.example/"},
        "https://s.example/",
        {"title": "no url"},
        42,
    ]
    assert normalize_search_results(raw) == [
        {"title": "T", "url": "https://t.example/"},
        {"title": "https://u.example/", "url": "https://u.example/"},
        {"title": "L", "url": "https://l.example/"},
        {"title": "https://s.example/", "url": "https://s.example/"},
    ]
    assert normalize_search_results({"url": "x"}) == []


def test_extract_results_from_provider_payloads():
    assert extract_openai_results({"citations": ["https://c.example/"]}) == [
        {"title": "https://c.example/", "url": "https://c.example/"}
    ]
    candidate = {"groundingMetadata": {"groundingChunks": [{"web": {"uri": "https://g.example/", "title": "G"}}]}}
    assert extract_gemini_results(candidate) == [{"title": "G", "url": "https://g.example/"}]
    assert extract_gemini_results({}) == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("go to https://a.example/x now", "go to [https://a.example/x](https://a.example/x) now"),
        ("see https://a.example/x. ok", "see [https://a.example/x](https://a.example/x). ok"),
        ("ends with https://a.exam", "ends with https://a.exam"),
        ("already [t](https://a.example/) ok", "already [t](https://a.example/) ok"),
        ("[https://a.example/](https://a.example/) ok", "[https://a.example/](https://a.example/) ok"),
        ("plain http://b.example ok", "plain [http://b.example](http://b.example) ok"),
        ("no links here", "no links here"),
    ],
)
def test_linkify_urls(text: str, expected: str):
    assert linkify_urls(text) == expected


def test_chunk_rewriter_substitutes_then_links():
    rewriter = ChunkRewriter(link_urls=True, search_results=[{"title": 'Say "hi"', "url": "https://q.example/"}])
    assert rewriter.active
    assert rewriter.rewrite("[citation:0] and https://r.example/ ok") == (
        "[Say hi](https://q.example/) and [https://r.example/](https://r.example/) ok"
    )


def test_chunk_rewriter_inactive_without_work():
    assert not ChunkRewriter(link_urls=False).active


def test_encode_sse_event():
    event = SSEEvent(data="line one\nline two", event="message", id="7")
    assert encode_sse_event(event) == b"event: message\nid: 7\ndata: line one\ndata: line two\n\n"
