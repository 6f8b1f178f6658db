from __future__ import annotations

from diligence.models.findings import (
    CompanyOverviewFindings,
    EmployeeMetricsFindings,
    FinancialHealthFindings,
    FundingHistoryFindings,
    RecentNewsFindings,
)


def test_company_overview_decodes_nested_records():
    overview = CompanyOverviewFindings.decode(
        {
            "description": "  Acme builds rockets ",
            "industry": "Aerospace",
            "founded_date": 2015,
            "founders": [
                {"name": "Ada", "role": "CEO", "verified": "yes", "experience": "ex-NASA"},
                "Bob",
                42,
            ],
            "registry": {"status": "Active", "registration_number": 12345},
            "domain": {"status": ["clientTransferProhibited", "ok"]},
            "headquarters": {"city": "Berlin"},
        }
    )

    assert overview.description == "Acme builds rockets"
    assert overview.founded_date == "2015"
    assert [f.name for f in overview.founders] == ["Ada", "Bob"]
    assert overview.founders[0].verified is True
    assert overview.founders[0].experience == ["ex-NASA"]
    assert overview.founders[1].verified is False
    assert overview.registry.registration_number == "12345"
    assert overview.domain.status == "clientTransferProhibited ok"


def test_non_mapping_input_decodes_to_defaults():
    assert CompanyOverviewFindings.decode(None) == CompanyOverviewFindings()
    assert RecentNewsFindings.decode(["not", "a", "dict"]).articles == []


def test_news_articles_merge_controversies_without_duplicates():
    news = RecentNewsFindings.decode(
        {
            "all_news": [
                {"title": "Acme raises Series B", "sentiment": "POSITIVE"},
                {"title": "Acme recalls product", "sentiment": "negative"},
            ],
            "controversies": [
                {"title": "acme recalls product", "sentiment": "negative"},
                {"title": "Founder lawsuit"},
            ],
        }
    )

    assert [item.title for item in news.articles] == [
        "Acme raises Series B",
        "Acme recalls product",
        "Founder lawsuit",
    ]
    assert [item.sentiment for item in news.articles] == ["positive", "negative", "neutral"]


def test_numeric_findings_accept_wrapped_and_formatted_values():
    assert FundingHistoryFindings.decode({"total_funding_usd": "$1,500,000"}).total_funding_usd == 1_500_000
    assert (
        FinancialHealthFindings.decode({"annual_revenue": {"value_usd": 2e6}}).annual_revenue_usd
        == 2_000_000
    )
    assert EmployeeMetricsFindings.decode({"current_employees": {"value": 40}}).current_employees == 40
    assert EmployeeMetricsFindings.decode({"current_employees": True}).current_employees is None
    assert FundingHistoryFindings.decode({"total_funding_usd": "n/a"}).total_funding_usd is None
