from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from diligence.config import settings
from diligence.tools import brave_search, tavily_search
from diligence.tools.tavily_search import SearchResult


@dataclass(slots=True)
class SearchRequest:
    query: str
    max_results: int = 10
    search_depth: str = "advanced"
    time_range: str | None = None


@dataclass(slots=True)
class BraveBackend:
    name: str = "brave"

    async def invoke(self, request: SearchRequest) -> list[SearchResult]:
        return await brave_search.search(
            query=request.query,
            max_results=request.max_results,
            time_range=request.time_range,
        )


@dataclass(slots=True)
class TavilyBackend:
    name: str = "tavily"

    async def invoke(self, request: SearchRequest) -> list[SearchResult]:
        return await tavily_search.search(
            query=request.query,
            search_depth=request.search_depth,
            max_results=request.max_results,
            time_range=request.time_range,
        )


def search_backends() -> list[Any]:
    """Configured search backends, most to least preferred.

    Providers without an API key are left out so a missing key never
    aborts the fallback chain.
    """
    provider = settings.search_provider.lower().strip()
    if provider not in ("brave", "tavily"):
        raise ValueError(f"Unsupported SEARCH_PROVIDER: {settings.search_provider}")

    backends: list[Any] = []
    if provider == "brave":
        if settings.brave_api_key:
            backends.append(BraveBackend())
        if settings.search_fallback_to_tavily and settings.tavily_api_key:
            backends.append(TavilyBackend())
    elif settings.tavily_api_key:
        backends.append(TavilyBackend())
    return backends
