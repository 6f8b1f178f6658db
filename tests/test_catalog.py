from __future__ import annotations

import pytest

from diligence.agents.catalog import default_catalog, get_topic, select_topics
from diligence.errors import TerminalInputError

SECTION_IDS = [
    "company_overview",
    "corporate_structure",
    "employee_metrics",
    "funding_history",
    "financial_health",
    "market_position",
    "competitor_analysis",
    "recent_news_developments",
    "growth_trajectory",
    "risk_and_investment_rationale",
    "ipo_potential",
    "employee_satisfaction",
    "customer_feedback",
]


def test_default_catalog_lists_sections_in_report_order():
    catalog = default_catalog()

    assert [topic.id for topic in catalog] == SECTION_IDS
    assert all(topic.title and topic.search_query for topic in catalog)


def test_topic_renders_entity_into_query_and_synthesis_prompt():
    topic = get_topic("funding_history")

    assert "Acme Corp" in topic.render_query("Acme Corp")
    assert "$entity" not in topic.render_query("Acme Corp")
    assert "Acme Corp" in topic.render_synthesis("Acme Corp")


def test_get_topic_rejects_unknown_ids():
    with pytest.raises(TerminalInputError):
        get_topic("weather_forecast")


def test_select_topics_keeps_requested_order():
    topics = select_topics(["funding_history", " company_overview ", ""])
    assert [topic.id for topic in topics] == ["funding_history", "company_overview"]

    assert [topic.id for topic in select_topics(None)] == SECTION_IDS


def test_select_topics_reports_unknown_ids():
    with pytest.raises(TerminalInputError, match="weather"):
        select_topics(["company_overview", "weather"])


def test_only_news_searches_are_time_bounded():
    bounded = {topic.id: topic.time_range for topic in default_catalog() if topic.time_range}
    assert bounded == {"recent_news_developments": "year"}
