from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Sequence

from loguru import logger

from diligence.agents.catalog import ResearchTopic
from diligence.config import settings
from diligence.errors import DiligenceError
from diligence.llm_client import ChatRequest, get_backend_models, model_backends
from diligence.models.research import (
    Relevance,
    SectionResult,
    SectionStatus,
    Source,
    SourceOrigin,
    utc_now,
)
from diligence.services import logger as log_service
from diligence.services.aggregation import dedupe_sources
from diligence.services.prompt_store import get_prompt, render_prompt
from diligence.services.resilience import Backend, ResilientInvoker, build_limiter
from diligence.tools import search_provider
from diligence.tools.search_provider import SearchRequest
from diligence.tools.tavily_search import SearchResult
from diligence.tools.web_utils import extract_domain, extract_urls

MAX_SNIPPET_CHARS = 600


@dataclass(slots=True)
class _EvidenceOutcome:
    text: str = ""
    sources: list[Source] = field(default_factory=list)
    provider: str | None = None
    fallback_from: str | None = None
    error: str | None = None


@dataclass(slots=True)
class _SearchOutcome:
    results: list[SearchResult] = field(default_factory=list)
    sources: list[Source] = field(default_factory=list)
    provider: str | None = None
    error: str | None = None


def extract_findings(raw_text: str) -> dict[str, Any]:
    """Parse synthesis output into a findings object, leniently.

    Fenced blocks are unwrapped; when the text is not JSON the outermost
    `{...}` span is tried; anything else is kept under `raw`.
    """
    text = (raw_text or "").strip()
    if text.startswith("```"):
        parts = text.split("```")
        if len(parts) >= 2:
            text = parts[1]
        if text.startswith("json"):
            text = text[4:]
        text = text.strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start >= 0 and end > start:
            try:
                parsed = json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                return {"raw": raw_text}
        else:
            return {"raw": raw_text}

    if isinstance(parsed, dict):
        return parsed
    return {"raw": parsed}


def section_confidence(evidence_sources: int, search_results: int, findings: dict[str, Any]) -> int:
    score = min(evidence_sources * 10, 50) + min(search_results * 3, 30)
    serialized = len(json.dumps(findings, default=str)) if findings else 0
    if serialized > 2000:
        score += 20
    elif serialized > 1000:
        score += 10
    return max(0, min(score, 100))


def _reply_text(value: Any) -> str:
    if hasattr(value, "text"):
        return value.text or ""
    if value is None:
        return ""
    return value if isinstance(value, str) else json.dumps(value, default=str)


def _format_search_results(results: Sequence[SearchResult]) -> str:
    blocks = []
    for idx, result in enumerate(results, start=1):
        snippet = (result.content or "")[:MAX_SNIPPET_CHARS]
        dated = f" ({result.published_date})" if result.published_date else ""
        blocks.append(f"[{idx}] {result.title}{dated}\n{result.url}\n{snippet}")
    return "\n\n".join(blocks)


class SectionResearcher:
    """Researches one catalog topic: evidence + search, then JSON synthesis."""

    def __init__(
        self,
        invoker: ResilientInvoker | None = None,
        evidence_backends: Sequence[Backend] | None = None,
        search_backends: Sequence[Backend] | None = None,
        synthesis_backends: Sequence[Backend] | None = None,
    ):
        self.invoker = invoker or ResilientInvoker(limiter=build_limiter())
        self.evidence_backends = list(
            evidence_backends
            if evidence_backends is not None
            else model_backends(get_backend_models(settings.evidence_model or None))
        )
        self.search_backends = list(
            search_backends if search_backends is not None else search_provider.search_backends()
        )
        self.synthesis_backends = list(
            synthesis_backends if synthesis_backends is not None else model_backends()
        )

    async def _gather_evidence(self, topic: ResearchTopic, entity_name: str) -> _EvidenceOutcome:
        request = ChatRequest(
            system=get_prompt("system.evidence"),
            prompt=render_prompt(
                "evidence.brief",
                entity=entity_name,
                title=topic.title,
                query=topic.render_query(entity_name),
            ),
            caller=f"evidence:{topic.id}",
            max_tokens=4096,
        )
        try:
            outcome = await self.invoker.invoke(
                request, self.evidence_backends, label=f"{topic.id}:evidence"
            )
        except Exception as exc:
            logger.warning(f"Evidence gathering failed for {topic.id}: {exc}")
            return _EvidenceOutcome(error=f"evidence: {exc}")

        text = _reply_text(outcome.value)
        sources = [
            Source(
                url=url,
                title=extract_domain(url),
                origin=SourceOrigin.EVIDENCE,
                relevance=Relevance.HIGH,
                section=topic.id,
            )
            for url in extract_urls(text)
        ]
        return _EvidenceOutcome(
            text=text,
            sources=sources,
            provider=outcome.backend,
            fallback_from=outcome.fallback_from,
        )

    async def _search(self, topic: ResearchTopic, entity_name: str) -> _SearchOutcome:
        request = SearchRequest(
            query=topic.render_query(entity_name),
            max_results=settings.search_max_results,
            time_range=topic.time_range,
        )
        try:
            outcome = await self.invoker.invoke(
                request, self.search_backends, label=f"{topic.id}:search"
            )
        except Exception as exc:
            logger.warning(f"Search failed for {topic.id}: {exc}")
            return _SearchOutcome(error=f"search: {exc}")

        results = [r for r in (outcome.value or []) if getattr(r, "url", None)]
        sources = [
            Source(
                url=result.url,
                title=result.title or extract_domain(result.url),
                origin=SourceOrigin.SEARCH,
                relevance=Relevance.for_position(idx),
                section=topic.id,
            )
            for idx, result in enumerate(results)
        ]
        return _SearchOutcome(results=results, sources=sources, provider=outcome.backend)

    async def _synthesize(
        self,
        topic: ResearchTopic,
        entity_name: str,
        evidence: _EvidenceOutcome,
        search: _SearchOutcome,
    ) -> dict[str, Any]:
        prompt = render_prompt(
            "synthesis.wrapper",
            instruction=topic.render_synthesis(entity_name),
            evidence=evidence.text or get_prompt("synthesis.no_evidence"),
            search_results=_format_search_results(search.results)
            or get_prompt("synthesis.no_results"),
        )
        request = ChatRequest(
            system=get_prompt("system.synthesis"),
            prompt=prompt,
            caller=f"synthesis:{topic.id}",
            max_tokens=settings.synthesis_max_tokens,
            json_mode=True,
        )
        outcome = await self.invoker.invoke(
            request, self.synthesis_backends, label=f"{topic.id}:synthesis"
        )
        text = _reply_text(outcome.value)
        if not text.strip():
            raise DiligenceError(f"synthesis: {outcome.backend} returned no content")
        return extract_findings(text)

    async def research(self, topic: ResearchTopic, entity_name: str) -> SectionResult:
        """Research a single topic. Never raises except on cancellation."""
        started_at = utc_now()
        t0 = time.monotonic()

        evidence, search = await asyncio.gather(
            self._gather_evidence(topic, entity_name),
            self._search(topic, entity_name),
        )

        try:
            findings = await self._synthesize(topic, entity_name, evidence, search)
        except Exception as exc:
            logger.warning(f"Synthesis failed for {topic.id}: {exc}")
            result = SectionResult.failed(topic.id, str(exc), started_at=started_at)
            self._log(entity_name, result)
            return result

        sub_errors = [err for err in (evidence.error, search.error) if err]
        status = SectionStatus.DEGRADED if sub_errors else SectionStatus.SUCCESS
        completed_at = utc_now()
        result = SectionResult(
            topic_id=topic.id,
            findings=findings,
            sources=dedupe_sources([*evidence.sources, *search.sources]),
            confidence=section_confidence(len(evidence.sources), len(search.results), findings),
            started_at=started_at,
            completed_at=completed_at,
            duration_seconds=round(time.monotonic() - t0, 3),
            status=status,
            error="; ".join(sub_errors) or None,
            evidence_provider=evidence.provider,
            fallback_from=evidence.fallback_from,
        )
        self._log(entity_name, result)
        return result

    @staticmethod
    def _log(entity_name: str, result: SectionResult) -> None:
        log_service.log_section(
            entity_name,
            result.topic_id,
            result.status.value,
            confidence=result.confidence,
            sources=len(result.sources),
            duration_seconds=result.duration_seconds,
            error=result.error,
        )
