"""Fold one entity's findings into a Report."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from contract.models import Outcome, Report, Summary, Verdict

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import datetime

    from contract.models import Finding


def compute_verdict(findings: Iterable[Finding]) -> Verdict:
    """FAIL if any finding failed, else WARN if any warned, else PASS."""
    outcomes = {finding.outcome for finding in findings}
    if Outcome.FAIL in outcomes:
        return Verdict.FAIL
    if Outcome.WARN in outcomes:
        return Verdict.WARN
    return Verdict.PASS


def summarize(findings: Iterable[Finding]) -> Summary:
    counts = Counter(finding.outcome for finding in findings)
    return Summary(
        passed=counts[Outcome.PASS],
        warned=counts[Outcome.WARN],
        failed=counts[Outcome.FAIL],
        not_applicable=counts[Outcome.NOT_APPLICABLE],
        total=sum(counts.values()),
    )


def build_report(
    entity: str,
    findings: Iterable[Finding],
    *,
    layer_positions: Mapping[str, int],
    generated_at: datetime,
) -> Report:
    """Build a Report with findings ordered by (layer position, rule id).

    Raises:
        RuntimeError: If two findings share a rule id.
    """
    ordered = sorted(
        findings,
        key=lambda f: (layer_positions.get(f.layer, 0), f.layer, f.rule_id),
    )

    seen: set[str] = set()
    for finding in ordered:
        if finding.rule_id in seen:
            msg = f"duplicate finding for rule {finding.rule_id!r} on entity {entity!r}"
            raise RuntimeError(msg)
        seen.add(finding.rule_id)

    return Report(
        entity=entity,
        generated_at=generated_at,
        findings=ordered,
        summary=summarize(ordered),
        verdict=compute_verdict(ordered),
    )


__all__ = ["build_report", "compute_verdict", "summarize"]
