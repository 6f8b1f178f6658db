"""Tests for API routes."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from diligence.agents.orchestrator import DiligenceOrchestrator
from diligence.api.routes.diligence import get_service
from diligence.errors import SERVICE_UNAVAILABLE_MESSAGE
from diligence.main import app
from diligence.models.research import SectionResult, Source
from diligence.services.due_diligence import DueDiligenceService


class StubResearcher:
    def __init__(self, delay: float = 0.0):
        self.delay = delay

    async def research(self, topic, entity_name):
        if self.delay:
            await asyncio.sleep(self.delay)
        findings = {"description": f"{entity_name} research"}
        if topic.id == "company_overview":
            findings["founded_date"] = "2021-01-01"
        return SectionResult(
            topic_id=topic.id,
            findings=findings,
            sources=[Source(url=f"https://example.com/{topic.id}")],
            confidence=75,
        )


def _service(delay: float = 0.0, total_timeout: float = 5.0) -> DueDiligenceService:
    orchestrator = DiligenceOrchestrator(
        StubResearcher(delay), section_timeout=5.0, total_timeout=total_timeout
    )
    return DueDiligenceService(orchestrator)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(service: DueDiligenceService) -> None:
    app.dependency_overrides[get_service] = lambda: service


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["service"] == "diligence"


def test_list_sections(client):
    response = client.get("/api/diligence/sections")
    assert response.status_code == 200
    sections = response.json()["sections"]
    assert len(sections) == 13
    assert sections[0]["id"] == "company_overview"
    assert sections[0]["title"] == "Company Overview"


def test_run_diligence_with_facts(client):
    _use(_service())

    response = client.post(
        "/api/diligence",
        json={
            "entity_name": "Acme Corp",
            "sections": ["company_overview", "funding_history"],
            "facts": {"foundedYear": 2015, "overallScore": 80},
        },
    )

    assert response.status_code == 200
    data = response.json()
    assert data["entity_name"] == "Acme Corp"
    assert list(data["research"]["sections"]) == ["company_overview", "funding_history"]
    assert data["research"]["overall_confidence"] == 75
    assert [d["field"] for d in data["discrepancy"]["discrepancies"]] == ["founding_date"]
    assert data["assessment"]["discrepancies_count"] == 1


def test_run_diligence_without_facts_skips_analysis(client):
    _use(_service())

    response = client.post(
        "/api/diligence", json={"entity_name": "Acme Corp", "sections": ["ipo_potential"]}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["discrepancy"] is None
    assert data["assessment"] is None


@pytest.mark.parametrize(
    "payload",
    [
        {"entity_name": "   "},
        {"entity_name": "Acme", "sections": ["weather"]},
        {"entity_name": "Acme", "sections": []},
    ],
)
def test_run_diligence_rejects_invalid_input(client, payload):
    _use(_service())
    response = client.post("/api/diligence", json=payload)
    assert response.status_code == 400


def test_run_diligence_maps_empty_timeout_to_503(client):
    _use(_service(delay=5.0, total_timeout=0.05))

    response = client.post(
        "/api/diligence", json={"entity_name": "Acme Corp", "sections": ["company_overview"]}
    )

    assert response.status_code == 503
    assert response.json()["detail"] == SERVICE_UNAVAILABLE_MESSAGE


def test_research_single_section(client):
    _use(_service())

    response = client.post("/api/diligence/sections/employee_metrics", json={"entity_name": "Acme"})
    assert response.status_code == 200
    assert response.json()["topic_id"] == "employee_metrics"

    response = client.post("/api/diligence/sections/weather", json={"entity_name": "Acme"})
    assert response.status_code == 404


def test_stream_emits_section_events(client):
    _use(_service())

    with client.stream(
        "GET",
        "/api/diligence/stream",
        params={"entity_name": "Acme Corp", "sections": "company_overview,funding_history"},
    ) as response:
        body = "\n".join([line for line in response.iter_lines() if line])

    assert response.status_code == 200
    assert "event: research_started" in body
    assert body.count("event: section_completed") == 2
    assert "event: research_complete" in body


def test_stream_requires_entity_name(client):
    response = client.get("/api/diligence/stream")
    assert response.status_code == 422
