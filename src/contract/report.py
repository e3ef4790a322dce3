"""JSON serialization for compliance reports."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson

from contract.models import Report

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

_JSON_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_INDENT_2

# Excluded from canonical output so repeated runs compare byte-for-byte.
_VOLATILE_FIELDS = frozenset({"generated_at"})


def report_to_dict(report: Report, *, canonical: bool = False) -> dict[str, Any]:
    exclude = set(_VOLATILE_FIELDS) if canonical else None
    return report.model_dump(mode="json", exclude=exclude)


def dumps_reports(reports: Sequence[Report], *, canonical: bool = False) -> bytes:
    """Serialize reports as a JSON array with sorted keys."""
    payload = [report_to_dict(report, canonical=canonical) for report in reports]
    return orjson.dumps(payload, option=_JSON_OPTIONS) + b"\n"


def canonical_bytes(reports: Sequence[Report]) -> bytes:
    """Timestamp-free serialization used for determinism comparisons."""
    return dumps_reports(reports, canonical=True)


def write_reports(path: Path, reports: Sequence[Report]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(dumps_reports(reports))


def load_reports(path: Path) -> list[Report]:
    """Load reports previously written by :func:`write_reports`."""
    payload = orjson.loads(path.read_bytes())
    if not isinstance(payload, list):
        msg = f"{path}: expected a JSON array of reports"
        raise ValueError(msg)
    return [Report.model_validate(item) for item in payload]


__all__ = [
    "canonical_bytes",
    "dumps_reports",
    "load_reports",
    "report_to_dict",
    "write_reports",
]
