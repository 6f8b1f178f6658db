from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SectionStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FAILED = "failed"


class SourceOrigin(str, Enum):
    EVIDENCE = "evidence"  # cited by the evidence-gathering model
    SEARCH = "search"  # directed web search


class Relevance(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RELEVANCE_RANK[self]

    @classmethod
    def for_position(cls, index: int) -> Relevance:
        """Relevance tier of a search hit by its rank in the result list."""
        if index < 3:
            return cls.HIGH
        if index < 6:
            return cls.MEDIUM
        return cls.LOW


_RELEVANCE_RANK = {Relevance.LOW: 1, Relevance.MEDIUM: 2, Relevance.HIGH: 3}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Source(BaseModel):
    url: str
    title: str = ""
    origin: SourceOrigin = SourceOrigin.SEARCH
    relevance: Relevance = Relevance.MEDIUM
    section: str | None = None


class SectionResult(BaseModel):
    """Outcome of one section research task.

    `findings` is deliberately schema-free: each topic returns its own shape,
    decoded only where it is consumed (see `diligence.models.findings`).
    """

    topic_id: str
    findings: dict[str, Any] = Field(default_factory=dict)
    sources: list[Source] = Field(default_factory=list)
    confidence: int = Field(default=0, ge=0, le=100)
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime = Field(default_factory=utc_now)
    duration_seconds: float = 0.0
    status: SectionStatus = SectionStatus.SUCCESS
    error: str | None = None
    evidence_provider: str | None = None
    fallback_from: str | None = None

    @classmethod
    def failed(
        cls,
        topic_id: str,
        error: str,
        started_at: datetime | None = None,
    ) -> SectionResult:
        started = started_at or utc_now()
        completed = utc_now()
        return cls(
            topic_id=topic_id,
            findings={},
            sources=[],
            confidence=0,
            started_at=started,
            completed_at=completed,
            duration_seconds=max((completed - started).total_seconds(), 0.0),
            status=SectionStatus.FAILED,
            error=error,
        )


class InformationGap(BaseModel):
    question_to_ask: str
    why_needed: str = ""
    category: str = ""


class AggregateResult(BaseModel):
    entity_name: str
    sections: dict[str, SectionResult]
    sources: list[Source] = Field(default_factory=list)
    overall_confidence: int = 50
    total_duration_seconds: float = 0.0
    sections_completed: int = 0
    sections_failed: int = 0
    sections_degraded: int = 0
    information_gaps: list[InformationGap] = Field(default_factory=list)
    summary: str = ""
    key_findings: list[str] = Field(default_factory=list)
    cancelled: bool = False
    timed_out: bool = False
    warnings: list[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utc_now)

    def findings(self, topic_id: str) -> dict[str, Any]:
        section = self.sections.get(topic_id)
        return dict(section.findings) if section else {}

    @property
    def is_partial(self) -> bool:
        return self.sections_failed > 0 or self.sections_degraded > 0
