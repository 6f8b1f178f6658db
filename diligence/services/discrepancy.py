"""Cross-checks document-derived claims against researched findings."""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Iterable

from loguru import logger

from diligence.models.discrepancy import (
    ConfidenceAssessment,
    ConfidenceFactor,
    Discrepancy,
    DiscrepancyReport,
    DocumentFacts,
    RedFlag,
    RedFlagSeverity,
    RedFlagType,
    Severity,
)
from diligence.models.findings import (
    CompanyOverviewFindings,
    EmployeeMetricsFindings,
    FinancialHealthFindings,
    FundingHistoryFindings,
    RecentNewsFindings,
)
from diligence.models.research import AggregateResult, utc_now
from diligence.services import logger as log_service
from diligence.services.aggregation import round_half_up

SIMILARITY_THRESHOLD = 0.3
DATE_TOLERANCE_DAYS = 365
NUMERIC_CLAIM_THRESHOLD = 0.5

KNOWN_INDUSTRIES = ("AI", "ML", "FinTech", "HealthTech", "EdTech", "SaaS", "E-commerce", "Biotech")
HEALTHY_REGISTRY_STATUSES = ("active", "good standing", "current")
FINANCIAL_NEWS_TERMS = ("funding", "financial", "revenue")

_IMPACT_SCORE = {"positive": 100, "neutral": 50, "negative": 0}
_RELIABILITY_PENALTY = {Severity.CRITICAL: 25, Severity.HIGH: 15, Severity.MEDIUM: 5}


def text_similarity(first: str, second: str) -> float:
    """Token-set overlap (intersection over union) of two texts."""
    tokens_a = set((first or "").lower().split())
    tokens_b = set((second or "").lower().split())
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def parse_date(value: Any) -> date | None:
    """Accepts a year (int or `YYYY`), `YYYY-MM`, `YYYY-MM-DD` or an ISO datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int):
        return date(value, 1, 1) if 1 <= value <= 9999 else None

    text = str(value).strip()
    try:
        if re.fullmatch(r"\d{4}", text):
            return date(int(text), 1, 1)
        match = re.fullmatch(r"(\d{4})-(\d{1,2})", text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), 1)
        match = re.fullmatch(r"(\d{4})-(\d{1,2})-(\d{1,2})", text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def dates_disagree(first: Any, second: Any) -> bool:
    a, b = parse_date(first), parse_date(second)
    if a is None or b is None:
        return False
    return abs((a - b).days) > DATE_TOLERANCE_DAYS


def relative_difference(first: float, second: float) -> float:
    scale = max(abs(first), abs(second))
    if scale == 0:
        return 0.0
    return abs(first - second) / scale


def _truncate(text: str, limit: int = 100) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _industries_match(first: str, second: str) -> bool:
    a = re.sub(r"[^a-z]", "", first.lower())
    b = re.sub(r"[^a-z]", "", second.lower())
    return a in b or b in a


def _industry_from_insights(insights: Iterable[str]) -> str | None:
    text = " ".join(insights).lower()
    for industry in KNOWN_INDUSTRIES:
        if industry.lower() in text:
            return industry
    return None


def _red_flag_type(category: str) -> RedFlagType:
    if category == "financial":
        return "financial"
    if category in ("team", "founder"):
        return "team"
    if category == "company_info":
        return "legal"
    return "operational"


def discrepancy_score(discrepancies: list[Discrepancy]) -> int:
    """Severity-weighted share of the worst possible outcome, 0..100."""
    if not discrepancies:
        return 0
    total = sum(d.severity.rank for d in discrepancies)
    return round_half_up(total / (len(discrepancies) * Severity.CRITICAL.rank) * 100)


def document_reliability(discrepancies: list[Discrepancy]) -> int:
    penalty = sum(_RELIABILITY_PENALTY.get(d.severity, 0) for d in discrepancies)
    return max(0, 100 - penalty)


def weighted_confidence(factors: list[ConfidenceFactor]) -> int:
    """Weighted factor score, renormalized over the factors present."""
    total_weight = sum(f.weight for f in factors)
    if not factors or total_weight <= 0:
        return 50
    weighted = sum(_IMPACT_SCORE[f.impact] * f.weight for f in factors)
    return round_half_up(weighted / total_weight)


def summarize(discrepancies: list[Discrepancy], red_flags: list[RedFlag], score: int) -> str:
    critical = sum(1 for d in discrepancies if d.severity == Severity.CRITICAL)
    high = sum(1 for d in discrepancies if d.severity == Severity.HIGH)
    if score == 0:
        return (
            "No significant discrepancies found between document claims and public data. "
            "High confidence in analysis."
        )
    if score < 25:
        return (
            f"Minor discrepancies found ({len(discrepancies)} total). "
            "Analysis remains reliable with some caution advised."
        )
    if score < 50:
        return (
            f"Moderate discrepancies detected ({len(discrepancies)} total, {high} high severity). "
            "Additional verification recommended."
        )
    return (
        f"Significant discrepancies found ({len(discrepancies)} total, {critical} critical, "
        f"{len(red_flags)} red flags). High risk of misrepresentation."
    )


class DiscrepancyAnalyzer:
    """Rule-based comparison of document facts with research findings."""

    def __init__(self, now: datetime | None = None):
        self._now = now

    def analyze(self, facts: Any, aggregate: AggregateResult) -> DiscrepancyReport:
        doc = DocumentFacts.coerce(facts)
        overview = CompanyOverviewFindings.decode(aggregate.findings("company_overview"))
        news = RecentNewsFindings.decode(aggregate.findings("recent_news_developments"))
        funding = FundingHistoryFindings.decode(aggregate.findings("funding_history"))
        financials = FinancialHealthFindings.decode(aggregate.findings("financial_health"))
        employees = EmployeeMetricsFindings.decode(aggregate.findings("employee_metrics"))

        discrepancies: list[Discrepancy] = []
        discrepancies += self._company_info(doc, overview)
        discrepancies += self._founders(doc, overview)
        discrepancies += self._financial_reputation(doc, news)
        discrepancies += self._market(doc, overview)
        discrepancies += self._numeric_claims(doc, funding, financials, employees)
        # stable: equal severities keep rule order
        discrepancies.sort(key=lambda d: d.severity.rank, reverse=True)

        red_flags = self._red_flags(discrepancies, overview)
        factors = self._confidence_factors(aggregate, overview, news)
        score = discrepancy_score(discrepancies)

        report = DiscrepancyReport(
            overall_discrepancy_score=score,
            discrepancies=discrepancies,
            red_flags=red_flags,
            confidence_assessment=ConfidenceAssessment(
                document_reliability=document_reliability(discrepancies),
                research_reliability=aggregate.overall_confidence,
                overall_confidence=weighted_confidence(factors),
                factors=factors,
            ),
            summary=summarize(discrepancies, red_flags, score),
        )
        log_service.log_event(
            event_type="discrepancy_analysis",
            message=f"Discrepancy analysis for {aggregate.entity_name} complete",
            entity_name=aggregate.entity_name,
            score=score,
            discrepancies=len(discrepancies),
            red_flags=len(red_flags),
        )
        return report

    def _company_info(
        self, doc: DocumentFacts, overview: CompanyOverviewFindings
    ) -> list[Discrepancy]:
        found: list[Discrepancy] = []

        document_description = doc.get("description") or " ".join(doc.key_insights)
        if overview.description and document_description:
            similarity = text_similarity(str(document_description), overview.description)
            if similarity < SIMILARITY_THRESHOLD:
                found.append(
                    Discrepancy(
                        category="company_info",
                        field="description",
                        document_value=_truncate(str(document_description)),
                        research_value=_truncate(overview.description),
                        severity=Severity.MEDIUM,
                        description="Company description in documents differs significantly from public information",
                        impact="May indicate misrepresentation or outdated information",
                        recommendation="Verify company description with official sources",
                    )
                )

        document_founded = doc.get("foundedYear", "founded_date", "foundedDate", "founded")
        if overview.founded_date and dates_disagree(document_founded, overview.founded_date):
            found.append(
                Discrepancy(
                    category="company_info",
                    field="founding_date",
                    document_value=document_founded,
                    research_value=overview.founded_date,
                    severity=Severity.HIGH,
                    description="Founding date in documents differs from public information",
                    impact="Could indicate false claims about company history",
                    recommendation="Verify founding date with official business registry",
                )
            )

        incorporation = overview.registry.incorporation_date
        if overview.founded_date and incorporation and dates_disagree(overview.founded_date, incorporation):
            found.append(
                Discrepancy(
                    category="company_info",
                    field="founding_date",
                    document_value=overview.founded_date,
                    research_value=incorporation,
                    severity=Severity.HIGH,
                    description="Founding date discrepancy between public info and business registry",
                    impact="Could indicate false claims about company history",
                    recommendation="Verify founding date with official business registry",
                )
            )
        return found

    def _founders(self, doc: DocumentFacts, overview: CompanyOverviewFindings) -> list[Discrepancy]:
        profiles = overview.founders
        if not profiles:
            return []
        found: list[Discrepancy] = []

        unverified = [p for p in profiles if not p.verified]
        if unverified:
            found.append(
                Discrepancy(
                    category="founder",
                    field="verification",
                    document_value=f"{len(doc.founders)} founders mentioned",
                    research_value=f"{len(unverified)} unverified profiles",
                    severity=Severity.MEDIUM,
                    description="Some founder profiles could not be verified through public sources",
                    impact="May indicate false founder claims or privacy concerns",
                    recommendation="Request additional verification for founder backgrounds",
                )
            )

        team_score = doc.metric("team")
        average_experience = sum(len(p.experience) for p in profiles) / len(profiles)
        if team_score is not None and team_score > 90 and average_experience < 3:
            found.append(
                Discrepancy(
                    category="team",
                    field="experience",
                    document_value=f"Team score: {team_score:g}",
                    research_value=f"Avg experience: {average_experience:.1f} positions",
                    severity=Severity.HIGH,
                    description="High team score in documents but limited public experience data",
                    impact="May indicate inflated team quality claims",
                    recommendation="Request detailed founder CVs and references",
                )
            )
        return found

    def _financial_reputation(self, doc: DocumentFacts, news: RecentNewsFindings) -> list[Discrepancy]:
        negative = [
            item
            for item in news.articles
            if item.sentiment == "negative"
            and any(term in item.title.lower() for term in FINANCIAL_NEWS_TERMS)
        ]
        financial_score = doc.metric("financials")
        if not negative or financial_score is None or financial_score <= 80:
            return []
        return [
            Discrepancy(
                category="financial",
                field="reputation",
                document_value=f"Financial score: {financial_score:g}",
                research_value=f"{len(negative)} negative financial news articles",
                severity=Severity.HIGH,
                description="High financial score in documents but negative financial news in public sources",
                impact="May indicate financial issues not disclosed in documents",
                recommendation="Investigate financial news and request detailed financial statements",
            )
        ]

    def _market(self, doc: DocumentFacts, overview: CompanyOverviewFindings) -> list[Discrepancy]:
        research_industry = overview.industry or overview.sector
        document_industry = doc.get("industry") or _industry_from_insights(doc.key_insights)
        if not research_industry or not document_industry:
            return []
        if _industries_match(str(document_industry), research_industry):
            return []
        return [
            Discrepancy(
                category="market",
                field="industry",
                document_value=str(document_industry),
                research_value=research_industry,
                severity=Severity.LOW,
                description="Industry classification differs between documents and public sources",
                impact="Minor discrepancy, may be due to different classification systems",
                recommendation="Clarify industry classification",
            )
        ]

    def _numeric_claims(
        self,
        doc: DocumentFacts,
        funding: FundingHistoryFindings,
        financials: FinancialHealthFindings,
        employees: EmployeeMetricsFindings,
    ) -> list[Discrepancy]:
        checks = (
            (
                "financial",
                "revenue",
                doc.get_number("annualRevenue", "revenue", "arr"),
                financials.annual_revenue_usd,
                True,
            ),
            (
                "financial",
                "total_funding",
                doc.get_number("totalFunding", "total_funding_usd", "fundingRaised"),
                funding.total_funding_usd,
                True,
            ),
            (
                "team",
                "headcount",
                doc.get_number("employees", "employeeCount", "headcount", "teamSize"),
                employees.current_employees,
                False,
            ),
        )

        found: list[Discrepancy] = []
        for category, field_name, claimed, researched, monetary in checks:
            if claimed is None or researched is None:
                continue
            difference = relative_difference(claimed, researched)
            if difference < NUMERIC_CLAIM_THRESHOLD:
                continue
            if not monetary:
                severity = Severity.MEDIUM
            elif claimed > researched:
                severity = Severity.CRITICAL
            else:
                severity = Severity.HIGH
            label = field_name.replace("_", " ")
            found.append(
                Discrepancy(
                    category=category,
                    field=field_name,
                    document_value=claimed,
                    research_value=researched,
                    severity=severity,
                    description=(
                        f"Documented {label} differs from public figures by {difference:.0%}"
                    ),
                    impact=(
                        f"{label.capitalize()} may be overstated in documents"
                        if claimed > researched
                        else f"Public {label} figures may be outdated or incomplete"
                    ),
                    recommendation=f"Request audited evidence for the stated {label}",
                )
            )
        return found

    def _red_flags(
        self, discrepancies: list[Discrepancy], overview: CompanyOverviewFindings
    ) -> list[RedFlag]:
        flags = [
            RedFlag(
                type=_red_flag_type(d.category),
                severity=RedFlagSeverity.CRITICAL,
                title=f"Critical {d.category} discrepancy",
                description=d.description,
                evidence=[str(d.document_value), str(d.research_value)],
                recommendation=d.recommendation,
            )
            for d in discrepancies
            if d.severity == Severity.CRITICAL
        ]

        domain_status = overview.domain.status
        if domain_status and "ok" not in domain_status.lower():
            flags.append(
                RedFlag(
                    type="operational",
                    severity=RedFlagSeverity.WARNING,
                    title="Domain status issues",
                    description="Company domain has non-standard status",
                    evidence=[domain_status],
                    recommendation="Verify domain ownership and status",
                )
            )

        registry_status = overview.registry.status
        if registry_status and registry_status.lower() not in HEALTHY_REGISTRY_STATUSES:
            flags.append(
                RedFlag(
                    type="legal",
                    severity=RedFlagSeverity.CRITICAL,
                    title="Business registry issues",
                    description="Company status in business registry is not active",
                    evidence=[registry_status],
                    recommendation="Verify company legal status immediately",
                )
            )
        return flags

    def _confidence_factors(
        self,
        aggregate: AggregateResult,
        overview: CompanyOverviewFindings,
        news: RecentNewsFindings,
    ) -> list[ConfidenceFactor]:
        research_score = aggregate.overall_confidence
        factors = [
            ConfidenceFactor(
                factor="Research Data Availability",
                impact="positive" if research_score > 70 else "negative" if research_score < 30 else "neutral",
                description=f"{research_score}% research confidence across sections",
                weight=0.3,
            )
        ]

        news_count = len(news.articles)
        factors.append(
            ConfidenceFactor(
                factor="Media Coverage",
                impact="positive" if news_count > 5 else "negative" if news_count == 0 else "neutral",
                description=f"{news_count} news articles found",
                weight=0.2,
            )
        )

        registered = parse_date(overview.domain.registered_date)
        if registered is not None:
            today = (self._now or utc_now()).date()
            age_years = (today - registered).days / 365.25
            factors.append(
                ConfidenceFactor(
                    factor="Domain Age",
                    impact="positive" if age_years > 2 else "negative" if age_years < 0.5 else "neutral",
                    description=f"Domain registered {age_years:.1f} years ago",
                    weight=0.15,
                )
            )
        elif overview.domain.registered_date:
            logger.debug(f"Unparseable domain registration date: {overview.domain.registered_date}")

        if overview.registry.registration_number:
            factors.append(
                ConfidenceFactor(
                    factor="Business Registry",
                    impact="positive",
                    description="Company found in business registry",
                    weight=0.2,
                )
            )

        if overview.founders:
            verified = sum(1 for p in overview.founders if p.verified)
            total = len(overview.founders)
            factors.append(
                ConfidenceFactor(
                    factor="Founder Verification",
                    impact="positive" if verified == total else "negative" if verified == 0 else "neutral",
                    description=f"{verified}/{total} founders verified",
                    weight=0.15,
                )
            )
        return factors
