"""Determinism verification for compliance reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from check.runner import run_compliance
from contract.report import canonical_bytes, load_reports
from rules.catalog import RuleCatalog

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from contract.models import Report

logger = logging.getLogger(__name__)

# Fixed timestamp; canonical bytes exclude it anyway.
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class DeterminismResult:
    ok: bool
    mismatches: tuple[str, ...] = field(default_factory=tuple)
    missing: tuple[str, ...] = field(default_factory=tuple)
    extra: tuple[str, ...] = field(default_factory=tuple)


def compare_reports(
    expected: Sequence[Report], actual: Sequence[Report]
) -> DeterminismResult:
    """Compare two report sets entity by entity on their canonical bytes."""
    expected_by_entity = {report.entity: report for report in expected}
    actual_by_entity = {report.entity: report for report in actual}

    missing = sorted(set(expected_by_entity) - set(actual_by_entity))
    extra = sorted(set(actual_by_entity) - set(expected_by_entity))
    mismatches = sorted(
        entity
        for entity in set(expected_by_entity) & set(actual_by_entity)
        if canonical_bytes([expected_by_entity[entity]])
        != canonical_bytes([actual_by_entity[entity]])
    )

    ok = not missing and not extra and not mismatches
    return DeterminismResult(
        ok=ok,
        mismatches=tuple(mismatches),
        missing=tuple(missing),
        extra=tuple(extra),
    )


def verify_determinism(
    *,
    root: Path,
    catalog_path: Path | None = None,
    entity: str | None = None,
    workers: int | None = None,
    baseline: Path | None = None,
) -> DeterminismResult:
    """Verify that compliance reports are deterministic.

    Without a baseline, the entities are checked once with a single worker
    and once with ``workers`` (at least two) and the two report sets are
    compared byte-for-byte, timestamps excluded. With a baseline, freshly
    generated reports are compared against the reports stored in that file.

    Args:
        root: Project root to check.
        catalog_path: Optional catalog file.
        entity: Entity name, or None for every discovered entity.
        workers: Parallel worker count for the second run.
        baseline: Reports previously written by ``compliance check --out``.

    Returns:
        DeterminismResult with ok status and the missing, extra and
        mismatched entity names.

    Raises:
        FileNotFoundError: If ``baseline`` does not exist.
    """
    catalog = RuleCatalog.load(root, catalog_path)

    if baseline is not None:
        if not baseline.is_file():
            msg = f"Baseline reports file does not exist: {baseline}"
            raise FileNotFoundError(msg)
        expected = load_reports(baseline)
        actual = run_compliance(
            entity, root, catalog=catalog, workers=workers, now=_EPOCH
        )
        return compare_reports(expected, actual)

    parallel = max(2, workers if workers is not None else catalog.settings.workers)
    serial_reports = run_compliance(
        entity, root, catalog=catalog, workers=1, now=_EPOCH
    )
    parallel_reports = run_compliance(
        entity, root, catalog=catalog, workers=parallel, now=_EPOCH
    )
    logger.info(
        "Compared %d reports (1 worker vs %d workers)", len(serial_reports), parallel
    )
    return compare_reports(serial_reports, parallel_reports)


__all__ = ["DeterminismResult", "compare_reports", "verify_determinism"]
