from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from diligence.config import settings
from diligence.tools.web_utils import is_valid_url, normalize_url


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float
    published_date: str | None = None


_clients: dict[str, AsyncTavilyClient] = {}


def _client() -> AsyncTavilyClient:
    key = settings.tavily_api_key
    if key not in _clients:
        _clients[key] = AsyncTavilyClient(api_key=key)
    return _clients[key]


def to_result(item: dict[str, Any]) -> SearchResult | None:
    """Map one Tavily hit; hits without a usable URL are dropped."""
    url = (item.get("url") or "").strip()
    if not is_valid_url(url):
        return None
    return SearchResult(
        title=(item.get("title") or "").strip(),
        url=normalize_url(url),
        content=(item.get("content") or "").strip(),
        score=float(item.get("score") or 0.0),
        published_date=item.get("published_date") or None,
    )


async def search(
    query: str,
    *,
    search_depth: str = "advanced",
    max_results: int = 10,
    time_range: str | None = None,
) -> list[SearchResult]:
    """Tavily web search. A time range switches to the news index so hits carry dates."""
    if not settings.tavily_api_key:
        raise RuntimeError("TAVILY_API_KEY is not configured")

    kwargs: dict[str, Any] = {
        "query": query,
        "search_depth": search_depth,
        "max_results": max_results,
        "topic": "news" if time_range else "general",
    }
    if time_range:
        kwargs["time_range"] = time_range

    response = await _client().search(**kwargs)

    results = [to_result(item) for item in response.get("results", [])]
    return [r for r in results if r is not None]
