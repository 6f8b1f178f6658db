from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


# --- Requests ---


class DiligenceRequest(BaseModel):
    entity_name: str
    facts: dict[str, Any] | list[dict[str, Any]] | None = None
    sections: list[str] | None = None


class SectionRequest(BaseModel):
    entity_name: str


# --- Responses ---


class SectionInfo(BaseModel):
    id: str
    title: str
    search_query: str


class SectionsResponse(BaseModel):
    sections: list[SectionInfo] = Field(default_factory=list)
