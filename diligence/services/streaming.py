from __future__ import annotations

from typing import Any

from diligence.agents.catalog import ResearchTopic
from diligence.models.events import EventType, SSEEvent
from diligence.models.research import AggregateResult, SectionResult


def research_started(entity_name: str, topics: list[ResearchTopic]) -> SSEEvent:
    return SSEEvent(
        event=EventType.RESEARCH_STARTED,
        data={
            "entity_name": entity_name,
            "sections": [{"id": topic.id, "title": topic.title} for topic in topics],
        },
    )


def section_started(topic: ResearchTopic) -> SSEEvent:
    return SSEEvent(
        event=EventType.SECTION_STARTED,
        data={"section": topic.id, "title": topic.title},
    )


def section_completed(result: SectionResult) -> SSEEvent:
    """Emit one finished section, including its findings."""
    return SSEEvent(
        event=EventType.SECTION_COMPLETED,
        data={"section": result.topic_id, **result.model_dump(mode="json")},
    )


def research_complete(result: AggregateResult) -> SSEEvent:
    return SSEEvent(event=EventType.RESEARCH_COMPLETE, data=result.model_dump(mode="json"))


def error(message: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.ERROR, data={"message": message, **kwargs})
