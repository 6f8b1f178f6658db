"""Typed decoders for per-topic findings.

The orchestrator treats findings as opaque dicts. Consumers that need a
concrete shape decode them here; malformed input decodes to empty defaults
instead of raising, since synthesis output is model-generated.
"""
from __future__ import annotations

from typing import Any, Mapping

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


def _as_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _as_number(value: Any) -> float | None:
    if isinstance(value, Mapping):
        for key in ("value_usd", "value", "amount_usd"):
            if key in value:
                return _as_number(value[key])
        return None
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").replace("$", "").strip())
    except ValueError:
        return None


def _as_records(value: Any, *, text_key: str) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    records: list[dict[str, Any]] = []
    for item in value:
        if isinstance(item, Mapping):
            records.append(dict(item))
        elif isinstance(item, str) and item.strip():
            records.append({text_key: item.strip()})
    return records


class _LenientFindings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @classmethod
    def decode(cls, data: Any):
        if not isinstance(data, Mapping):
            return cls()
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            logger.debug(f"Could not decode {cls.__name__}: {exc.error_count()} errors")
            return cls()


class FounderProfile(_LenientFindings):
    name: str = ""
    role: str = ""
    verified: bool = False
    experience: list[Any] = Field(default_factory=list)

    @field_validator("name", "role", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value) or ""

    @field_validator("verified", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "yes", "verified", "1")
        return bool(value)

    @field_validator("experience", mode="before")
    @classmethod
    def _experience(cls, value: Any) -> list[Any]:
        if isinstance(value, list):
            return value
        if value in (None, ""):
            return []
        return [value]


class RegistryRecord(_LenientFindings):
    status: str | None = None
    registration_number: str | None = None
    incorporation_date: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        return _as_text(value)


class DomainRecord(_LenientFindings):
    status: str | None = None
    registered_date: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str | None:
        if isinstance(value, list):
            return " ".join(str(v) for v in value) or None
        return _as_text(value)


class CompanyOverviewFindings(_LenientFindings):
    description: str = ""
    sector: str = ""
    industry: str = ""
    founded_date: str | None = None
    website: str | None = None
    founders: list[FounderProfile] = Field(default_factory=list)
    registry: RegistryRecord = Field(default_factory=RegistryRecord)
    domain: DomainRecord = Field(default_factory=DomainRecord)

    @field_validator("description", "sector", "industry", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value) or ""

    @field_validator("founded_date", "website", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("founders", mode="before")
    @classmethod
    def _founders(cls, value: Any) -> list[dict[str, Any]]:
        return _as_records(value, text_key="name")

    @field_validator("registry", "domain", mode="before")
    @classmethod
    def _record(cls, value: Any) -> dict[str, Any]:
        return dict(value) if isinstance(value, Mapping) else {}


class NewsItem(_LenientFindings):
    title: str = ""
    date: str | None = None
    url: str | None = None
    sentiment: str = "neutral"

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str:
        return _as_text(value) or ""

    @field_validator("date", "url", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> str | None:
        return _as_text(value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> str:
        return (_as_text(value) or "neutral").lower()


class RecentNewsFindings(_LenientFindings):
    all_news: list[NewsItem] = Field(default_factory=list)
    controversies: list[NewsItem] = Field(default_factory=list)

    @field_validator("all_news", "controversies", mode="before")
    @classmethod
    def _items(cls, value: Any) -> list[dict[str, Any]]:
        return _as_records(value, text_key="title")

    @property
    def articles(self) -> list[NewsItem]:
        """All news plus controversies, de-duplicated by title."""
        seen: set[str] = set()
        merged: list[NewsItem] = []
        for item in [*self.all_news, *self.controversies]:
            key = item.title.lower()
            if key and key in seen:
                continue
            seen.add(key)
            merged.append(item)
        return merged


class FundingHistoryFindings(_LenientFindings):
    total_funding_usd: float | None = None

    @field_validator("total_funding_usd", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return _as_number(value)


class FinancialHealthFindings(_LenientFindings):
    annual_revenue_usd: float | None = Field(default=None, validation_alias="annual_revenue")

    @field_validator("annual_revenue_usd", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return _as_number(value)


class EmployeeMetricsFindings(_LenientFindings):
    current_employees: float | None = None

    @field_validator("current_employees", mode="before")
    @classmethod
    def _number(cls, value: Any) -> float | None:
        return _as_number(value)
