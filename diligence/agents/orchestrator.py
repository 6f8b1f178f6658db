"""Parallel fan-out of section research with a global deadline and cancellation."""
from __future__ import annotations

import asyncio
import inspect
import time
import warnings
from typing import Any, AsyncIterator, Callable, Sequence

from loguru import logger

from diligence.agents.catalog import ResearchTopic, default_catalog, get_topic
from diligence.agents.section_researcher import SectionResearcher
from diligence.config import settings
from diligence.errors import (
    SERVICE_UNAVAILABLE_MESSAGE,
    DiligenceError,
    OrchestrationCancelledError,
    PartialResultWarning,
    TerminalInputError,
)
from diligence.models.events import SSEEvent
from diligence.models.research import AggregateResult, SectionResult, SectionStatus, utc_now
from diligence.services import aggregation
from diligence.services import logger as log_service
from diligence.services import streaming

SectionCallback = Callable[[SectionResult], Any]

TIMED_OUT = "timed out"
CANCELLED = "cancelled"


class DiligenceOrchestrator:
    """Runs every catalog topic concurrently and folds the results in catalog order."""

    def __init__(
        self,
        researcher: SectionResearcher | None = None,
        *,
        section_timeout: float | None = None,
        total_timeout: float | None = None,
    ):
        self._researcher = researcher
        self.section_timeout = (
            settings.section_timeout_seconds if section_timeout is None else section_timeout
        )
        self.total_timeout = (
            settings.orchestrator_timeout_seconds if total_timeout is None else total_timeout
        )
        if not self.total_timeout or self.total_timeout <= 0:
            raise TerminalInputError("Orchestrator total timeout must be greater than zero")

    @property
    def researcher(self) -> SectionResearcher:
        if self._researcher is None:
            self._researcher = SectionResearcher()
        return self._researcher

    @staticmethod
    def validate(
        entity_name: str,
        catalog: Sequence[ResearchTopic | str] | None = None,
    ) -> tuple[str, list[ResearchTopic]]:
        """Normalized entity name and topic list; raises TerminalInputError."""
        if not isinstance(entity_name, str) or not entity_name.strip():
            raise TerminalInputError("Entity name is required")

        topics = default_catalog() if catalog is None else [
            get_topic(item) if isinstance(item, str) else item for item in catalog
        ]
        if not topics:
            raise TerminalInputError("At least one research section is required")

        seen: set[str] = set()
        duplicates = []
        for topic in topics:
            if topic.id in seen:
                duplicates.append(topic.id)
            seen.add(topic.id)
        if duplicates:
            raise TerminalInputError(f"Duplicate research sections: {', '.join(duplicates)}")
        return entity_name.strip(), topics

    async def _run_section(self, topic: ResearchTopic, entity_name: str) -> SectionResult:
        started_at = utc_now()
        timeout = self.section_timeout if self.section_timeout and self.section_timeout > 0 else None
        try:
            return await asyncio.wait_for(self.researcher.research(topic, entity_name), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Section {topic.id} timed out after {self.section_timeout}s")
            result = SectionResult.failed(topic.id, TIMED_OUT, started_at=started_at)
        except Exception as exc:
            logger.exception(f"Section {topic.id} failed unexpectedly")
            result = SectionResult.failed(topic.id, str(exc), started_at=started_at)

        log_service.log_section(
            entity_name,
            topic.id,
            result.status.value,
            duration_seconds=result.duration_seconds,
            error=result.error,
        )
        return result

    @staticmethod
    async def _notify(on_section: SectionCallback | None, result: SectionResult) -> None:
        if on_section is None:
            return
        try:
            outcome = on_section(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception(f"on_section callback failed for {result.topic_id}")

    async def run_all(
        self,
        entity_name: str,
        catalog: Sequence[ResearchTopic | str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        on_section: SectionCallback | None = None,
    ) -> AggregateResult:
        entity, topics = self.validate(entity_name, catalog)
        loop = asyncio.get_running_loop()
        started_at = utc_now()
        t0 = time.monotonic()
        last_completion = t0

        log_service.log_event(
            event_type="research_started",
            message=f"Researching {len(topics)} sections for {entity}",
            entity_name=entity,
            sections=[topic.id for topic in topics],
        )

        tasks = {
            asyncio.create_task(self._run_section(topic, entity), name=f"section:{topic.id}"): topic
            for topic in topics
        }
        pending = set(tasks)
        results: dict[str, SectionResult] = {}
        cancelled = timed_out = False
        deadline = loop.time() + self.total_timeout
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event else None

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    timed_out = True
                    break
                waiting = (pending | {cancel_waiter}) if cancel_waiter else pending
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is cancel_waiter:
                        continue
                    pending.discard(task)
                    result = task.result()
                    results[tasks[task].id] = result
                    last_completion = time.monotonic()
                    await self._notify(on_section, result)
                if cancel_waiter is not None and cancel_waiter.done() and pending:
                    cancelled = True
                    break
                if not done:
                    timed_out = True
                    break
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if (cancelled or timed_out) and not results:
            reason = TIMED_OUT if timed_out else CANCELLED
            log_service.log_event(
                event_type="research_aborted",
                message=f"Research for {entity} {reason} before any section finished",
                entity_name=entity,
            )
            raise OrchestrationCancelledError(
                f"Research for {entity} {reason} before any section finished",
                timed_out=timed_out,
            )

        unfinished_reason = TIMED_OUT if timed_out else CANCELLED
        ordered = [
            results.get(topic.id)
            or SectionResult.failed(topic.id, unfinished_reason, started_at=started_at)
            for topic in topics
        ]

        partial = [r for r in ordered if r.status != SectionStatus.SUCCESS]
        notes = [f"{r.topic_id}: {r.status.value} ({r.error or 'no detail'})" for r in partial]
        if partial:
            warnings.warn(
                f"Partial research for {entity}: {len(partial)} of {len(ordered)} sections "
                "failed or degraded",
                PartialResultWarning,
                stacklevel=2,
            )

        result = aggregation.aggregate(
            entity,
            ordered,
            started_at=started_at,
            total_duration_seconds=last_completion - t0,
            cancelled=cancelled,
            timed_out=timed_out,
            warnings=notes,
        )
        log_service.log_event(
            event_type="research_complete",
            message=f"Research for {entity} finished",
            entity_name=entity,
            completed=result.sections_completed,
            failed=result.sections_failed,
            degraded=result.sections_degraded,
            confidence=result.overall_confidence,
        )
        return result

    async def research_section(self, entity_name: str, topic_id: str) -> SectionResult:
        """Research one section on demand (progressive loading)."""
        topic = get_topic(topic_id)
        entity, _ = self.validate(entity_name, [topic])
        return await self._run_section(topic, entity)

    async def stream(
        self,
        entity_name: str,
        catalog: Sequence[ResearchTopic | str] | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncIterator[SSEEvent]:
        """Yield progress events while `run_all` executes."""
        try:
            entity, topics = self.validate(entity_name, catalog)
        except TerminalInputError as exc:
            yield streaming.error(str(exc))
            return

        yield streaming.research_started(entity, topics)
        for topic in topics:
            yield streaming.section_started(topic)

        queue: asyncio.Queue[SectionResult | None] = asyncio.Queue()
        run = asyncio.create_task(
            self.run_all(entity, topics, cancel_event=cancel_event, on_section=queue.put_nowait)
        )
        run.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                yield streaming.section_completed(item)
            aggregate = run.result()
        except DiligenceError as exc:
            yield streaming.error(str(exc))
            return
        except Exception:
            logger.exception(f"Streaming research failed for {entity}")
            yield streaming.error(SERVICE_UNAVAILABLE_MESSAGE)
            return
        finally:
            if not run.done():
                run.cancel()
                await asyncio.gather(run, return_exceptions=True)

        yield streaming.research_complete(aggregate)
