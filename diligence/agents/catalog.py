from __future__ import annotations

from dataclasses import dataclass
from string import Template
from typing import Iterable

from diligence.errors import TerminalInputError
from diligence.services.prompt_store import render_prompt, section_entry, section_keys


@dataclass(frozen=True, slots=True)
class ResearchTopic:
    """One due-diligence section: what to search for and how to synthesize it."""

    id: str
    title: str
    search_query: str
    synthesis_prompt: str
    time_range: str | None = None  # day | week | month | year

    def render_query(self, entity_name: str) -> str:
        return Template(self.search_query).safe_substitute(entity=entity_name)

    def render_synthesis(self, entity_name: str) -> str:
        return render_prompt(self.synthesis_prompt, entity=entity_name)


def _topic(topic_id: str) -> ResearchTopic:
    entry = section_entry(topic_id)
    return ResearchTopic(
        id=topic_id,
        title=entry["title"],
        search_query=entry["search_query"],
        synthesis_prompt=f"sections.{topic_id}.synthesis",
        time_range=entry.get("time_range"),
    )


def default_catalog() -> list[ResearchTopic]:
    """The built-in section catalog, in report order."""
    return [_topic(topic_id) for topic_id in section_keys()]


def get_topic(topic_id: str) -> ResearchTopic:
    if topic_id not in section_keys():
        raise TerminalInputError(f"Unknown research section: {topic_id}")
    return _topic(topic_id)


def select_topics(topic_ids: Iterable[str] | None) -> list[ResearchTopic]:
    """Topics for the given ids, in the order requested; all topics when None."""
    if topic_ids is None:
        return default_catalog()
    ids = [topic_id.strip() for topic_id in topic_ids if topic_id and topic_id.strip()]
    known = set(section_keys())
    unknown = [topic_id for topic_id in ids if topic_id not in known]
    if unknown:
        raise TerminalInputError(f"Unknown research sections: {', '.join(unknown)}")
    return [_topic(topic_id) for topic_id in ids]
