"""Fan-in: source de-duplication, confidence scoring and the research summary."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Iterable, Sequence

from diligence.models.research import (
    AggregateResult,
    InformationGap,
    SectionResult,
    SectionStatus,
    Source,
    utc_now,
)
from diligence.tools.web_utils import normalize_url

NEUTRAL_CONFIDENCE = 50
LOW_CONFIDENCE_THRESHOLD = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def dedupe_sources(sources: Iterable[Source]) -> list[Source]:
    """Unique sources by normalized URL, first occurrence wins its position.

    A later duplicate with strictly higher relevance upgrades the kept entry.
    Blank URLs are dropped. Applying this twice yields the same list.
    """
    by_url: dict[str, Source] = {}
    ordered: list[Source] = []
    for source in sources:
        key = normalize_url(source.url)
        if not key:
            continue
        kept = by_url.get(key)
        if kept is None:
            kept = source.model_copy(update={"url": key})
            by_url[key] = kept
            ordered.append(kept)
        elif source.relevance.rank > kept.relevance.rank:
            kept.relevance = source.relevance
    return ordered


def overall_confidence(results: Iterable[SectionResult]) -> int:
    """Mean of the non-zero section confidences; neutral when there are none."""
    confidences = [result.confidence for result in results if result.confidence > 0]
    if not confidences:
        return NEUTRAL_CONFIDENCE
    return round_half_up(sum(confidences) / len(confidences))


def merge(results: Sequence[SectionResult]) -> tuple[list[Source], int]:
    """Combine sources across sections in the order given (catalog order)."""
    stamped: list[Source] = []
    for result in results:
        for source in result.sources:
            stamped.append(
                source if source.section else source.model_copy(update={"section": result.topic_id})
            )
    return dedupe_sources(stamped), overall_confidence(results)


def _gap_from(item: Any, category: str) -> InformationGap | None:
    if isinstance(item, str) and item.strip():
        return InformationGap(question_to_ask=item.strip(), category=category)
    if isinstance(item, dict):
        question = item.get("question_to_ask") or item.get("question")
        if not question:
            return None
        return InformationGap(
            question_to_ask=str(question),
            why_needed=str(item.get("why_needed") or ""),
            category=str(item.get("category") or category),
        )
    return None


def extract_information_gaps(results: Sequence[SectionResult]) -> list[InformationGap]:
    gaps: list[InformationGap] = []
    for result in results:
        reported = result.findings.get("information_gaps")
        if isinstance(reported, list):
            for item in reported:
                gap = _gap_from(item, result.topic_id)
                if gap is not None:
                    gaps.append(gap)

        if result.confidence < LOW_CONFIDENCE_THRESHOLD:
            gaps.append(
                InformationGap(
                    question_to_ask=f"Need more information about {result.topic_id}",
                    why_needed=f"Low confidence ({result.confidence}%) in {result.topic_id} data",
                    category=result.topic_id,
                )
            )
    return gaps


def summarize(
    entity_name: str,
    results: Sequence[SectionResult],
    sources: Sequence[Source],
    confidence: int,
) -> tuple[str, list[str]]:
    completed = sum(1 for r in results if r.status != SectionStatus.FAILED)
    summary = (
        f"Comprehensive due diligence for {entity_name} completed across "
        f"{completed} of {len(results)} sections."
    )
    key_findings = [
        f"Research completed across {completed} sections",
        f"Average confidence: {confidence}%",
        f"Total sources: {len(sources)}",
    ]
    failed = [r.topic_id for r in results if r.status == SectionStatus.FAILED]
    if failed:
        key_findings.append(f"Sections without data: {', '.join(failed)}")
    return summary, key_findings


def aggregate(
    entity_name: str,
    results: Sequence[SectionResult],
    *,
    started_at: datetime | None = None,
    total_duration_seconds: float = 0.0,
    cancelled: bool = False,
    timed_out: bool = False,
    warnings: list[str] | None = None,
) -> AggregateResult:
    """Fold section results, already in catalog order, into one AggregateResult."""
    sources, confidence = merge(results)
    summary, key_findings = summarize(entity_name, results, sources, confidence)
    return AggregateResult(
        entity_name=entity_name,
        sections={result.topic_id: result for result in results},
        sources=sources,
        overall_confidence=confidence,
        total_duration_seconds=round(max(total_duration_seconds, 0.0), 3),
        sections_completed=sum(1 for r in results if r.status != SectionStatus.FAILED),
        sections_failed=sum(1 for r in results if r.status == SectionStatus.FAILED),
        sections_degraded=sum(1 for r in results if r.status == SectionStatus.DEGRADED),
        information_gaps=extract_information_gaps(results),
        summary=summary,
        key_findings=key_findings,
        cancelled=cancelled,
        timed_out=timed_out,
        warnings=list(warnings or []),
        started_at=started_at or utc_now(),
    )
