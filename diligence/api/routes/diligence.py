from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from diligence.agents.catalog import default_catalog, get_topic
from diligence.agents.orchestrator import DiligenceOrchestrator
from diligence.errors import (
    SERVICE_UNAVAILABLE_MESSAGE,
    OrchestrationCancelledError,
    ServiceUnavailableError,
    TerminalInputError,
)
from diligence.models.discrepancy import DueDiligenceReport
from diligence.models.research import SectionResult
from diligence.models.schemas import DiligenceRequest, SectionInfo, SectionRequest, SectionsResponse
from diligence.services import logger as log_service
from diligence.services import streaming
from diligence.services.due_diligence import DueDiligenceService

router = APIRouter(prefix="/api/diligence", tags=["diligence"])

_service: DueDiligenceService | None = None


def get_service() -> DueDiligenceService:
    global _service
    if _service is None:
        _service = DueDiligenceService()
    return _service


def get_orchestrator(service: DueDiligenceService = Depends(get_service)) -> DiligenceOrchestrator:
    return service.orchestrator


@router.get("/sections", response_model=SectionsResponse)
async def list_sections():
    """Research sections available for a due-diligence run."""
    return SectionsResponse(
        sections=[
            SectionInfo(id=topic.id, title=topic.title, search_query=topic.search_query)
            for topic in default_catalog()
        ]
    )


@router.post("", response_model=DueDiligenceReport)
async def run_diligence(
    request: DiligenceRequest,
    service: DueDiligenceService = Depends(get_service),
):
    try:
        return await service.run(request.entity_name, facts=request.facts, catalog=request.sections)
    except TerminalInputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ServiceUnavailableError, OrchestrationCancelledError) as e:
        log_service.log_event(
            event_type="diligence_unavailable",
            message="Due-diligence run produced no result",
            error=str(e),
            entity_name=request.entity_name,
        )
        raise HTTPException(status_code=503, detail=SERVICE_UNAVAILABLE_MESSAGE)


@router.post("/sections/{topic_id}", response_model=SectionResult)
async def research_section(
    topic_id: str,
    request: SectionRequest,
    orchestrator: DiligenceOrchestrator = Depends(get_orchestrator),
):
    """Research a single section on demand."""
    try:
        get_topic(topic_id)
    except TerminalInputError as e:
        raise HTTPException(status_code=404, detail=str(e))
    try:
        return await orchestrator.research_section(request.entity_name, topic_id)
    except TerminalInputError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/stream")
async def stream_diligence(
    http_request: Request,
    entity_name: str = Query(..., min_length=1),
    sections: str | None = Query(default=None),
    orchestrator: DiligenceOrchestrator = Depends(get_orchestrator),
):
    """SSE endpoint that streams section progress events."""
    catalog = [s for s in sections.split(",") if s.strip()] if sections else None
    cancel_event = asyncio.Event()

    async def event_generator():
        try:
            async for event in orchestrator.stream(entity_name, catalog, cancel_event=cancel_event):
                if await http_request.is_disconnected():
                    cancel_event.set()
                    break
                yield {"event": event.event.value, "data": event.payload()}
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in diligence stream",
                error=str(e),
                entity_name=entity_name,
            )
            error_event = streaming.error("Research stream failed unexpectedly.")
            yield {"event": error_event.event.value, "data": error_event.payload()}
        finally:
            cancel_event.set()

    return EventSourceResponse(event_generator())
