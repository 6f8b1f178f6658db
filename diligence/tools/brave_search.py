from __future__ import annotations

from typing import Any

import httpx

from diligence.config import settings
from diligence.tools.tavily_search import SearchResult
from diligence.tools.web_utils import is_valid_url, normalize_url

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_MAX_COUNT = 20

FRESHNESS = {"day": "pd", "week": "pw", "month": "pm", "year": "py"}


def _snippet(item: dict[str, Any]) -> str:
    description = (item.get("description") or "").strip()
    if description:
        return description
    return " ".join(item.get("extra_snippets") or []).strip()


def parse_results(payload: dict[str, Any], max_results: int) -> list[SearchResult]:
    """Web hits followed by news hits, de-duplicated by URL and scored by rank."""
    raw = [
        *(payload.get("web") or {}).get("results", []),
        *(payload.get("news") or {}).get("results", []),
    ]
    seen: set[str] = set()
    hits: list[dict[str, Any]] = []
    for item in raw:
        url = (item.get("url") or "").strip()
        if not is_valid_url(url):
            continue
        key = normalize_url(url)
        if key in seen:
            continue
        seen.add(key)
        hits.append({**item, "url": key})

    hits = hits[:max_results]
    total = max(len(hits), 1)
    return [
        SearchResult(
            title=item.get("title", ""),
            url=item["url"],
            content=_snippet(item),
            score=max(0.0, 1.0 - (idx / total)),
            published_date=item.get("page_age") or item.get("age"),
        )
        for idx, item in enumerate(hits)
    ]


async def search(
    query: str,
    *,
    max_results: int = 10,
    time_range: str | None = None,
) -> list[SearchResult]:
    """Brave web search including its news vertical."""
    if not settings.brave_api_key:
        raise RuntimeError("BRAVE_API_KEY is not configured")

    params: dict[str, Any] = {
        "q": query,
        "count": min(max_results, BRAVE_MAX_COUNT),
        "result_filter": "web,news",
        "extra_snippets": "true",
    }
    if time_range in FRESHNESS:
        params["freshness"] = FRESHNESS[time_range]

    async with httpx.AsyncClient(timeout=30.0) as client:
        response = await client.get(
            BRAVE_SEARCH_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "X-Subscription-Token": settings.brave_api_key,
            },
        )
        response.raise_for_status()
        payload = response.json()

    return parse_results(payload, max_results)
