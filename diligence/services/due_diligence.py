from __future__ import annotations

import asyncio
from typing import Any, Sequence
from uuid import uuid4

from diligence.agents.catalog import ResearchTopic
from diligence.agents.orchestrator import DiligenceOrchestrator, SectionCallback
from diligence.models.discrepancy import DocumentFacts, DueDiligenceReport
from diligence.services import logger as log_service
from diligence.services.assessment import synthesize
from diligence.services.discrepancy import DiscrepancyAnalyzer


class DueDiligenceService:
    """Research, then cross-check document claims and produce an assessment."""

    def __init__(
        self,
        orchestrator: DiligenceOrchestrator | None = None,
        analyzer: DiscrepancyAnalyzer | None = None,
    ):
        self.orchestrator = orchestrator or DiligenceOrchestrator()
        self.analyzer = analyzer or DiscrepancyAnalyzer()

    async def run(
        self,
        entity_name: str,
        facts: Any = None,
        catalog: Sequence[ResearchTopic | str] | None = None,
        cancel_event: asyncio.Event | None = None,
        *,
        on_section: SectionCallback | None = None,
    ) -> DueDiligenceReport:
        research = await self.orchestrator.run_all(
            entity_name, catalog, cancel_event=cancel_event, on_section=on_section
        )
        report = DueDiligenceReport(
            analysis_id=str(uuid4()),
            entity_name=research.entity_name,
            research=research,
        )
        if facts is None:
            return report

        document = DocumentFacts.coerce(facts)
        discrepancy = self.analyzer.analyze(document, research)
        base_score = (
            document.overall_score
            if document.overall_score is not None
            else research.overall_confidence
        )
        report.discrepancy = discrepancy
        report.assessment = synthesize(
            base_score,
            discrepancy.overall_discrepancy_score,
            discrepancy.red_flags,
            report=discrepancy,
            aggregate=research,
        )
        log_service.log_event(
            event_type="assessment_complete",
            message=f"Assessment for {research.entity_name}: {report.assessment.recommendation}",
            analysis_id=report.analysis_id,
            adjusted_score=report.assessment.adjusted_score,
            risk_level=report.assessment.risk_level,
        )
        return report
