"""Final investment assessment from the document score and discrepancy analysis."""
from __future__ import annotations

from typing import Iterable, Literal

from diligence.models.discrepancy import (
    DiscrepancyReport,
    OverallAssessment,
    RedFlag,
    RedFlagSeverity,
    Severity,
)
from diligence.models.findings import CompanyOverviewFindings, RecentNewsFindings
from diligence.models.research import AggregateResult
from diligence.services.aggregation import round_half_up

DISCREPANCY_PENALTY = 0.5


def risk_level(red_flags: list[RedFlag], discrepancy_score: float) -> Literal["Low", "Medium", "High"]:
    critical = sum(1 for flag in red_flags if flag.severity == RedFlagSeverity.CRITICAL)
    if critical > 0 or discrepancy_score > 70:
        return "High"
    if discrepancy_score > 40 or len(red_flags) > 2:
        return "Medium"
    return "Low"


def recommendation(
    adjusted_score: float, red_flag_count: int
) -> Literal["strong_buy", "buy", "hold", "pass"]:
    if red_flag_count > 2:
        return "pass"
    if adjusted_score >= 85:
        return "strong_buy"
    if adjusted_score >= 70:
        return "buy"
    if adjusted_score >= 55:
        return "hold"
    return "pass"


def confidence_level(score: float) -> Literal["high", "medium", "low"]:
    if score >= 80:
        return "high"
    if score >= 60:
        return "medium"
    return "low"


def key_findings(
    base_score: float,
    red_flags: list[RedFlag],
    report: DiscrepancyReport | None,
    aggregate: AggregateResult | None,
) -> list[str]:
    findings = [f"Document analysis shows overall score of {base_score:g}/100"]

    if aggregate is not None:
        research_score = aggregate.overall_confidence
        if research_score > 70:
            findings.append(f"Strong public data verification ({research_score}% confidence)")
        elif research_score < 30:
            findings.append(f"Limited public data available ({research_score}% confidence)")

    if report is not None:
        if not report.discrepancies:
            findings.append("No significant discrepancies found between documents and public data")
        else:
            findings.append(f"{len(report.discrepancies)} discrepancies identified")

    if red_flags:
        findings.append(f"{len(red_flags)} red flags require attention")

    if aggregate is not None:
        articles = RecentNewsFindings.decode(aggregate.findings("recent_news_developments")).articles
        positive = sum(1 for item in articles if item.sentiment == "positive")
        negative = sum(1 for item in articles if item.sentiment == "negative")
        if positive > negative:
            findings.append("Positive media sentiment overall")
        elif negative > positive:
            findings.append("Negative media sentiment detected")
    return findings


def next_steps(
    red_flags: list[RedFlag],
    report: DiscrepancyReport | None,
    aggregate: AggregateResult | None,
) -> list[str]:
    steps: list[str] = []
    discrepancies = report.discrepancies if report is not None else []

    if any(d.severity == Severity.CRITICAL for d in discrepancies):
        steps.append("Address critical discrepancies immediately")
        steps.append("Request additional documentation for verification")

    if red_flags:
        steps.append("Investigate all red flags before proceeding")

    if aggregate is not None:
        if aggregate.overall_confidence < 50:
            steps.append("Gather additional public information")
            steps.append("Verify company registration and legal status")
        overview = CompanyOverviewFindings.decode(aggregate.findings("company_overview"))
        if any(not founder.verified for founder in overview.founders):
            steps.append("Verify founder backgrounds and credentials")

    if any(d.category == "financial" for d in discrepancies):
        steps.append("Request audited financial statements")
        steps.append("Verify revenue claims with third-party sources")

    if not steps:
        steps.append("Proceed with standard due diligence")
        steps.append("Schedule management meetings")
    return steps


def synthesize(
    base_score: float,
    discrepancy_score: float,
    red_flags: Iterable[RedFlag] = (),
    *,
    report: DiscrepancyReport | None = None,
    aggregate: AggregateResult | None = None,
) -> OverallAssessment:
    flags = list(red_flags)
    adjusted = max(0.0, float(base_score) - float(discrepancy_score) * DISCREPANCY_PENALTY)

    if report is not None:
        level = confidence_level(report.confidence_assessment.overall_confidence)
    elif aggregate is not None:
        level = confidence_level(aggregate.overall_confidence)
    else:
        level = "medium"

    return OverallAssessment(
        adjusted_score=round_half_up(adjusted),
        risk_level=risk_level(flags, discrepancy_score),
        recommendation=recommendation(adjusted, len(flags)),
        confidence_level=level,
        key_findings=key_findings(base_score, flags, report, aggregate),
        next_steps=next_steps(flags, report, aggregate),
        red_flags_count=len(flags),
        discrepancies_count=len(report.discrepancies) if report is not None else 0,
    )
