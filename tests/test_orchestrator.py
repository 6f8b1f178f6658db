from __future__ import annotations

import asyncio

import pytest

from diligence.agents.catalog import default_catalog, get_topic
from diligence.agents.orchestrator import DiligenceOrchestrator
from diligence.errors import (
    OrchestrationCancelledError,
    PartialResultWarning,
    TerminalInputError,
)
from diligence.models.events import EventType
from diligence.models.research import SectionResult, SectionStatus, Source


class FakeResearcher:
    """Stands in for SectionResearcher; outcomes and delays are keyed by topic id."""

    def __init__(self, outcomes=None, delays=None, confidence: int = 70):
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.confidence = confidence
        self.calls: list[str] = []

    async def research(self, topic, entity_name):
        self.calls.append(topic.id)
        delay = self.delays.get(topic.id, 0)
        if delay:
            await asyncio.sleep(delay)
        outcome = self.outcomes.get(topic.id)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, SectionResult):
            return outcome
        return SectionResult(
            topic_id=topic.id,
            findings={"entity": entity_name, "topic": topic.id},
            sources=[Source(url=f"https://example.com/{topic.id}")],
            confidence=self.confidence,
        )


def _orchestrator(researcher, *, section_timeout=5.0, total_timeout=5.0):
    return DiligenceOrchestrator(
        researcher, section_timeout=section_timeout, total_timeout=total_timeout
    )


def _acme_catalog():
    return [get_topic("company_overview"), get_topic("funding_history")]


@pytest.mark.asyncio
async def test_every_catalog_topic_is_present_in_catalog_order():
    researcher = FakeResearcher()
    result = await _orchestrator(researcher).run_all("Acme Corp")

    expected = [topic.id for topic in default_catalog()]
    assert list(result.sections) == expected
    assert sorted(researcher.calls) == sorted(expected)
    assert result.sections_completed == len(expected)
    assert result.sections_failed == 0
    assert result.overall_confidence == 70
    assert result.warnings == []
    assert not result.is_partial


@pytest.mark.asyncio
async def test_sections_run_concurrently():
    delays = {
        "company_overview": 0.2,
        "funding_history": 0.2,
        "market_position": 0.25,
        "ipo_potential": 0.2,
    }
    catalog = [get_topic(topic_id) for topic_id in delays]

    result = await _orchestrator(FakeResearcher(delays=delays)).run_all("Acme Corp", catalog)

    assert result.sections_completed == len(delays)
    assert result.total_duration_seconds >= 0.24
    assert result.total_duration_seconds < sum(delays.values()) * 0.6


@pytest.mark.asyncio
async def test_single_terminal_failure_marks_only_that_topic():
    researcher = FakeResearcher(
        outcomes={"funding_history": SectionResult.failed("funding_history", "invalid request")}
    )

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher).run_all("Acme Corp")

    assert result.sections["funding_history"].status == SectionStatus.FAILED
    others = [r for key, r in result.sections.items() if key != "funding_history"]
    assert all(r.status == SectionStatus.SUCCESS for r in others)
    assert result.sections_failed == 1
    assert result.warnings == ["funding_history: failed (invalid request)"]


@pytest.mark.asyncio
async def test_unexpected_researcher_error_becomes_failed_section():
    researcher = FakeResearcher(outcomes={"company_overview": RuntimeError("boom")})

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher).run_all("Acme Corp", _acme_catalog())

    overview = result.sections["company_overview"]
    assert overview.status == SectionStatus.FAILED
    assert overview.error == "boom"
    assert overview.findings == {}


@pytest.mark.asyncio
async def test_acme_scenario_confidence_and_sources():
    overview = SectionResult(
        topic_id="company_overview",
        findings={"description": "Acme builds rockets"},
        sources=[
            Source(url="https://acme.example.com"),
            Source(url="https://crunchbase.example.com/acme"),
            Source(url="https://news.example.com/acme"),
        ],
        confidence=80,
    )
    researcher = FakeResearcher(
        outcomes={
            "company_overview": overview,
            "funding_history": SectionResult.failed("funding_history", "invalid request"),
        }
    )

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher).run_all("Acme Corp", _acme_catalog())

    assert list(result.sections) == ["company_overview", "funding_history"]
    assert result.sections["company_overview"].status == SectionStatus.SUCCESS
    assert result.sections["funding_history"].status == SectionStatus.FAILED
    assert result.overall_confidence == 80
    assert len(result.sources) == 3
    assert {s.section for s in result.sources} == {"company_overview"}


@pytest.mark.asyncio
@pytest.mark.parametrize("entity_name", ["", "   "])
async def test_blank_entity_name_is_rejected(entity_name):
    researcher = FakeResearcher()
    with pytest.raises(TerminalInputError):
        await _orchestrator(researcher).run_all(entity_name)
    assert researcher.calls == []


@pytest.mark.asyncio
async def test_invalid_catalogs_are_rejected():
    orchestrator = _orchestrator(FakeResearcher())

    with pytest.raises(TerminalInputError):
        await orchestrator.run_all("Acme", [])
    with pytest.raises(TerminalInputError):
        await orchestrator.run_all("Acme", ["company_overview", "company_overview"])
    with pytest.raises(TerminalInputError):
        await orchestrator.run_all("Acme", ["not_a_section"])


def test_total_timeout_must_be_positive():
    with pytest.raises(TerminalInputError):
        DiligenceOrchestrator(FakeResearcher(), total_timeout=0)


@pytest.mark.asyncio
async def test_section_timeout_fails_only_the_slow_topic():
    researcher = FakeResearcher(delays={"funding_history": 1.0})

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher, section_timeout=0.05).run_all(
            "Acme Corp", _acme_catalog()
        )

    assert result.sections["company_overview"].status == SectionStatus.SUCCESS
    assert result.sections["funding_history"].status == SectionStatus.FAILED
    assert result.sections["funding_history"].error == "timed out"
    assert not result.timed_out


@pytest.mark.asyncio
async def test_global_timeout_keeps_finished_sections():
    researcher = FakeResearcher(delays={"funding_history": 5.0})

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher, total_timeout=0.1).run_all(
            "Acme Corp", _acme_catalog()
        )

    assert result.timed_out
    assert result.sections["company_overview"].status == SectionStatus.SUCCESS
    assert result.sections["funding_history"].status == SectionStatus.FAILED
    assert result.sections["funding_history"].error == "timed out"


@pytest.mark.asyncio
async def test_global_timeout_with_nothing_finished_raises():
    researcher = FakeResearcher(delays={"company_overview": 5.0, "funding_history": 5.0})

    with pytest.raises(OrchestrationCancelledError) as exc_info:
        await _orchestrator(researcher, total_timeout=0.05).run_all("Acme Corp", _acme_catalog())

    assert exc_info.value.timed_out


@pytest.mark.asyncio
async def test_cancel_event_stops_in_flight_sections():
    researcher = FakeResearcher(delays={"funding_history": 5.0})
    cancel_event = asyncio.Event()

    def on_section(result):
        cancel_event.set()

    with pytest.warns(PartialResultWarning):
        result = await _orchestrator(researcher).run_all(
            "Acme Corp", _acme_catalog(), cancel_event=cancel_event, on_section=on_section
        )

    assert result.cancelled
    assert not result.timed_out
    assert result.sections["company_overview"].status == SectionStatus.SUCCESS
    assert result.sections["funding_history"].error == "cancelled"


@pytest.mark.asyncio
async def test_cancel_before_any_section_finishes_raises():
    researcher = FakeResearcher(delays={"company_overview": 5.0, "funding_history": 5.0})
    cancel_event = asyncio.Event()
    cancel_event.set()

    with pytest.raises(OrchestrationCancelledError) as exc_info:
        await _orchestrator(researcher).run_all("Acme", _acme_catalog(), cancel_event=cancel_event)

    assert not exc_info.value.timed_out


@pytest.mark.asyncio
async def test_on_section_sees_completion_order_but_result_uses_catalog_order():
    researcher = FakeResearcher(delays={"company_overview": 0.05})
    seen: list[str] = []

    async def on_section(result):
        seen.append(result.topic_id)

    result = await _orchestrator(researcher).run_all(
        "Acme Corp", _acme_catalog(), on_section=on_section
    )

    assert seen == ["funding_history", "company_overview"]
    assert list(result.sections) == ["company_overview", "funding_history"]


@pytest.mark.asyncio
async def test_research_section_runs_a_single_topic():
    researcher = FakeResearcher()
    result = await _orchestrator(researcher).research_section("Acme Corp", "employee_metrics")

    assert result.topic_id == "employee_metrics"
    assert researcher.calls == ["employee_metrics"]

    with pytest.raises(TerminalInputError):
        await _orchestrator(researcher).research_section("Acme Corp", "unknown_topic")


@pytest.mark.asyncio
async def test_stream_emits_lifecycle_events():
    researcher = FakeResearcher()
    events = [
        event
        async for event in _orchestrator(researcher).stream("Acme Corp", _acme_catalog())
    ]

    types = [event.event for event in events]
    assert types[0] == EventType.RESEARCH_STARTED
    assert types[1:3] == [EventType.SECTION_STARTED, EventType.SECTION_STARTED]
    assert types[3:5] == [EventType.SECTION_COMPLETED, EventType.SECTION_COMPLETED]
    assert types[-1] == EventType.RESEARCH_COMPLETE
    assert events[-1].data["entity_name"] == "Acme Corp"
    assert set(events[-1].data["sections"]) == {"company_overview", "funding_history"}
    assert events[-1].format().startswith("event: research_complete\ndata: ")


@pytest.mark.asyncio
async def test_stream_reports_invalid_input_as_error_event():
    events = [event async for event in _orchestrator(FakeResearcher()).stream("  ")]

    assert len(events) == 1
    assert events[0].event == EventType.ERROR
    assert "Entity name" in events[0].data["message"]


@pytest.mark.asyncio
async def test_stream_reports_cancellation_as_error_event():
    researcher = FakeResearcher(delays={"company_overview": 5.0, "funding_history": 5.0})
    orchestrator = _orchestrator(researcher, total_timeout=0.05)

    events = [event async for event in orchestrator.stream("Acme Corp", _acme_catalog())]

    assert events[-1].event == EventType.ERROR
    assert all(event.event != EventType.RESEARCH_COMPLETE for event in events)
