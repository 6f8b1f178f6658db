from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel, Field, field_validator

from diligence.models.research import AggregateResult, utc_now


def normalize_key(name: Any) -> str:
    """Case- and separator-insensitive field key (`foundedYear` == `founded_year`)."""
    return re.sub(r"[^a-z0-9]", "", str(name).lower())


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = value.strip().replace(",", "").replace("$", "")
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


class FactAssertion(BaseModel):
    """One document-derived claim, supplied by the extraction collaborator."""

    category: str
    field: str
    value: Any = None


class DocumentFacts(BaseModel):
    """Typed view over the document-derived fact set."""

    overall_score: float | None = None
    metrics: dict[str, float] = Field(default_factory=dict)
    key_insights: list[str] = Field(default_factory=list)
    founders: list[str] = Field(default_factory=list)
    claims: dict[str, Any] = Field(default_factory=dict)

    def get(self, *names: str) -> Any:
        for name in names:
            value = self.claims.get(normalize_key(name))
            if value not in (None, ""):
                return value
        return None

    def get_number(self, *names: str) -> float | None:
        for name in names:
            number = _to_float(self.claims.get(normalize_key(name)))
            if number is not None:
                return number
        return None

    def metric(self, name: str) -> float | None:
        return self.metrics.get(normalize_key(name))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DocumentFacts:
        overall_score: float | None = None
        metrics: dict[str, float] = {}
        key_insights: list[str] = []
        founders: list[str] = []
        claims: dict[str, Any] = {}

        def absorb(key: Any, value: Any) -> None:
            nonlocal overall_score
            nk = normalize_key(key)
            if nk in ("overallscore", "score"):
                overall_score = _to_float(value)
            elif nk == "metrics" and isinstance(value, Mapping):
                for metric_name, metric_value in value.items():
                    number = _to_float(metric_value)
                    if number is not None:
                        metrics[normalize_key(metric_name)] = number
            elif nk in ("keyinsights", "insights"):
                items = [value] if isinstance(value, str) else list(value or [])
                key_insights.extend(str(item) for item in items if str(item).strip())
            elif nk == "founders":
                for founder in value if isinstance(value, (list, tuple)) else [value]:
                    name = founder.get("name") if isinstance(founder, Mapping) else founder
                    if name:
                        founders.append(str(name))
            elif isinstance(value, Mapping):
                for child_key, child_value in value.items():
                    absorb(child_key, child_value)
            else:
                claims.setdefault(nk, value)

        for key, value in data.items():
            absorb(key, value)

        return cls(
            overall_score=overall_score,
            metrics=metrics,
            key_insights=key_insights,
            founders=founders,
            claims=claims,
        )

    @classmethod
    def from_assertions(cls, assertions: Iterable[FactAssertion | Mapping[str, Any]]) -> DocumentFacts:
        grouped: dict[str, dict[str, Any]] = {}
        for item in assertions:
            assertion = item if isinstance(item, FactAssertion) else FactAssertion.model_validate(item)
            grouped.setdefault(assertion.category, {})[assertion.field] = assertion.value
        return cls.from_mapping(grouped)

    @classmethod
    def coerce(cls, facts: Any) -> DocumentFacts:
        if isinstance(facts, DocumentFacts):
            return facts
        if isinstance(facts, Mapping):
            return cls.from_mapping(facts)
        if facts is None:
            return cls()
        return cls.from_assertions(facts)


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Total order critical > high > medium > low; doubles as scoring weight."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3, Severity.CRITICAL: 4}

DiscrepancyCategory = Literal["market", "team", "financial", "product", "company_info", "founder"]
RedFlagType = Literal["financial", "team", "legal", "operational", "reputation"]


class Discrepancy(BaseModel):
    category: DiscrepancyCategory
    field: str
    document_value: str | float | int
    research_value: str | float | int
    severity: Severity
    description: str
    impact: str
    recommendation: str

    @field_validator("document_value", "research_value", mode="before")
    @classmethod
    def _scalar_value(cls, value: Any) -> Any:
        if isinstance(value, date):
            return value.isoformat()
        if value is None:
            return ""
        if isinstance(value, (str, int, float)):
            return value
        return str(value)


class RedFlagSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


class RedFlag(BaseModel):
    type: RedFlagType
    severity: RedFlagSeverity
    title: str
    description: str
    evidence: list[str] = Field(default_factory=list)
    recommendation: str


class ConfidenceFactor(BaseModel):
    factor: str
    impact: Literal["positive", "negative", "neutral"]
    description: str
    weight: float


class ConfidenceAssessment(BaseModel):
    document_reliability: int
    research_reliability: int
    overall_confidence: int
    factors: list[ConfidenceFactor] = Field(default_factory=list)


class DiscrepancyReport(BaseModel):
    overall_discrepancy_score: int
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    red_flags: list[RedFlag] = Field(default_factory=list)
    confidence_assessment: ConfidenceAssessment
    summary: str


class OverallAssessment(BaseModel):
    adjusted_score: int
    risk_level: Literal["Low", "Medium", "High"]
    recommendation: Literal["strong_buy", "buy", "hold", "pass"]
    confidence_level: Literal["high", "medium", "low"] = "medium"
    key_findings: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    red_flags_count: int = 0
    discrepancies_count: int = 0


class DueDiligenceReport(BaseModel):
    analysis_id: str
    entity_name: str
    analyzed_at: datetime = Field(default_factory=utc_now)
    research: AggregateResult
    discrepancy: DiscrepancyReport | None = None
    assessment: OverallAssessment | None = None
