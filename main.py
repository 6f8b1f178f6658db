"""Diligence Engine - parallel due-diligence research.

Simple CLI for researching a company and cross-checking document claims.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from diligence.agents.catalog import select_topics
from diligence.errors import DiligenceError
from diligence.models.research import SectionResult
from diligence.services.due_diligence import DueDiligenceService


def _print_section(result: SectionResult) -> None:
    marker = {"success": "+", "degraded": "~", "failed": "!"}[result.status.value]
    line = f"  [{marker}] {result.topic_id}: {result.status.value}, confidence {result.confidence}%"
    line += f", {len(result.sources)} sources"
    if result.error:
        line += f" ({result.error[:80]})"
    print(line, flush=True)


async def run_diligence(
    entity: str,
    facts_path: str | None = None,
    sections: str | None = None,
    as_json: bool = False,
) -> int:
    """Run due diligence on the given entity."""
    facts = json.loads(Path(facts_path).read_text(encoding="utf-8")) if facts_path else None
    topic_ids = [s.strip() for s in sections.split(",") if s.strip()] if sections else None
    topics = select_topics(topic_ids)

    if not as_json:
        print(f"Due diligence: {entity}")
        print("-" * 50)
        print(f"\n[*] Researching {len(topics)} sections in parallel...")

    service = DueDiligenceService()
    report = await service.run(
        entity,
        facts=facts,
        catalog=topics,
        on_section=None if as_json else _print_section,
    )

    if as_json:
        print(report.model_dump_json(indent=2))
        return 0

    research = report.research
    print("\n[*] Research Complete!")
    print(f"   Runtime: {research.total_duration_seconds:.1f}s")
    print(f"   Confidence: {research.overall_confidence}%")
    print(f"   Sections: {research.sections_completed} completed, {research.sections_failed} failed")
    print(f"   Sources: {len(research.sources)}")
    print(f"\n{research.summary}")
    for finding in research.key_findings:
        print(f"  - {finding}")

    if report.discrepancy is not None:
        print(f"\n{'='*50}")
        print("DISCREPANCIES:")
        print(f"{'='*50}")
        print(report.discrepancy.summary)
        for item in report.discrepancy.discrepancies:
            print(f"  [{item.severity.value}] {item.category}/{item.field}: {item.description}")
        for flag in report.discrepancy.red_flags:
            print(f"  [red flag: {flag.severity.value}] {flag.title}")

    if report.assessment is not None:
        assessment = report.assessment
        print(f"\n{'='*50}")
        print("ASSESSMENT:")
        print(f"{'='*50}")
        print(f"   Score: {assessment.adjusted_score}/100")
        print(f"   Risk: {assessment.risk_level}")
        print(f"   Recommendation: {assessment.recommendation}")
        print(f"   Confidence: {assessment.confidence_level}")
        print("\nNext steps:")
        for step in assessment.next_steps:
            print(f"  - {step}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Diligence Engine - due-diligence research")
    parser.add_argument("--entity", "-e", required=True, help="Company to research")
    parser.add_argument("--facts", "-f", help="JSON file with document-derived facts")
    parser.add_argument("--sections", "-s", help="Comma-separated section ids (default: all)")
    parser.add_argument("--json", action="store_true", help="Print the full report as JSON")

    args = parser.parse_args()

    try:
        code = asyncio.run(run_diligence(args.entity, args.facts, args.sections, args.json))
    except DiligenceError as e:
        print(f"\n[!] Error: {e}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
