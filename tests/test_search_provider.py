from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from diligence.tools import search_provider
from diligence.tools.brave_search import parse_results
from diligence.tools.search_provider import BraveBackend, SearchRequest, TavilyBackend
from diligence.tools.tavily_search import SearchResult, to_result


def _settings(mock_settings, provider="brave", brave="b-key", tavily="t-key", fallback=True):
    mock_settings.search_provider = provider
    mock_settings.brave_api_key = brave
    mock_settings.tavily_api_key = tavily
    mock_settings.search_fallback_to_tavily = fallback


def test_brave_with_tavily_fallback():
    with patch("diligence.tools.search_provider.settings") as mock_settings:
        _settings(mock_settings)
        backends = search_provider.search_backends()

    assert [b.name for b in backends] == ["brave", "tavily"]


def test_missing_keys_are_left_out_of_the_chain():
    with patch("diligence.tools.search_provider.settings") as mock_settings:
        _settings(mock_settings, brave="")
        assert [b.name for b in search_provider.search_backends()] == ["tavily"]

        _settings(mock_settings, brave="", tavily="")
        assert search_provider.search_backends() == []

        _settings(mock_settings, fallback=False)
        assert [b.name for b in search_provider.search_backends()] == ["brave"]


def test_tavily_only_provider():
    with patch("diligence.tools.search_provider.settings") as mock_settings:
        _settings(mock_settings, provider="Tavily")
        assert [b.name for b in search_provider.search_backends()] == ["tavily"]


def test_unsupported_provider_raises():
    with patch("diligence.tools.search_provider.settings") as mock_settings:
        _settings(mock_settings, provider="unknown-provider")
        with pytest.raises(ValueError):
            search_provider.search_backends()


@pytest.mark.asyncio
async def test_backends_forward_the_request():
    hit = SearchResult(title="t", url="https://example.com", content="c", score=1.0)
    request = SearchRequest(query="Acme news", max_results=5, time_range="year")

    with patch("diligence.tools.brave_search.search", new=AsyncMock(return_value=[hit])) as brave:
        assert await BraveBackend().invoke(request) == [hit]
    brave.assert_awaited_once_with(query="Acme news", max_results=5, time_range="year")

    with patch("diligence.tools.tavily_search.search", new=AsyncMock(return_value=[hit])) as tavily:
        assert await TavilyBackend().invoke(request) == [hit]
    tavily.assert_awaited_once_with(
        query="Acme news", search_depth="advanced", max_results=5, time_range="year"
    )


def test_brave_parse_merges_news_and_dedupes():
    payload = {
        "web": {
            "results": [
                {"title": "Acme", "url": "https://acme.example.com", "description": "Rockets"},
                {"title": "Broken", "url": "not-a-url"},
                {"title": "Wiki", "url": "https://wiki.example.com/Acme", "extra_snippets": ["a", "b"]},
            ]
        },
        "news": {
            "results": [
                {"title": "Acme again", "url": "https://acme.example.com.", "age": "2 days ago"},
                {"title": "Acme raises", "url": "https://news.example.com/acme", "page_age": "2026-09-01"},
            ]
        },
    }

    results = parse_results(payload, max_results=10)

    assert [r.url for r in results] == [
        "https://acme.example.com",
        "https://wiki.example.com/Acme",
        "https://news.example.com/acme",
    ]
    assert results[1].content == "a b"
    assert results[2].published_date == "2026-09-01"
    assert results[0].score == 1.0
    assert results[0].score > results[1].score > results[2].score


def test_brave_parse_respects_max_results_and_empty_payload():
    payload = {"web": {"results": [{"url": f"https://e.example.com/{i}"} for i in range(5)]}}
    assert len(parse_results(payload, max_results=2)) == 2
    assert parse_results({}, max_results=5) == []


def test_tavily_hit_mapping():
    result = to_result(
        {"title": " Acme ", "url": "https://acme.example.com/", "content": "x", "score": 0.7}
    )
    assert result == SearchResult(title="Acme", url="https://acme.example.com", content="x", score=0.7)
    assert to_result({"title": "no url"}) is None
