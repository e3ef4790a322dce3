from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import orjson
import pytest

from contract.models import (
    REPORT_SCHEMA_VERSION,
    Finding,
    Location,
    Outcome,
    Report,
    Severity,
    Summary,
    Verdict,
)
from contract.report import canonical_bytes, dumps_reports, load_reports, write_reports

if TYPE_CHECKING:
    from pathlib import Path


def _report(generated_at: datetime) -> Report:
    finding = Finding(
        rule_id="no-raw-exceptions",
        layer="service",
        entity="product",
        severity=Severity.FAIL,
        outcome=Outcome.FAIL,
        location=Location(path="backend/app/services/product_service.py", line=1),
        message="forbidden token 'HTTPException' found",
    )
    return Report(
        entity="product",
        generated_at=generated_at,
        findings=[finding],
        summary=Summary(failed=1, total=1),
        verdict=Verdict.FAIL,
    )


def test_report_json_shape() -> None:
    payload = orjson.loads(dumps_reports([_report(datetime(2024, 1, 1, tzinfo=UTC))]))

    (report,) = payload
    assert report["schema_version"] == REPORT_SCHEMA_VERSION
    assert report["verdict"] == "FAIL"
    assert report["generated_at"].startswith("2024-01-01T00:00:00")
    assert report["findings"][0]["location"] == {
        "path": "backend/app/services/product_service.py",
        "line": 1,
    }
    assert list(report) == sorted(report)


def test_canonical_bytes_exclude_timestamp() -> None:
    first = canonical_bytes([_report(datetime(2024, 1, 1, tzinfo=UTC))])
    second = canonical_bytes([_report(datetime(2031, 5, 6, tzinfo=UTC))])

    assert first == second
    assert b"generated_at" not in first


def test_write_and_load_reports(tmp_path: Path) -> None:
    path = tmp_path / "out" / "reports.json"
    reports = [_report(datetime(2024, 1, 1, tzinfo=UTC))]

    write_reports(path, reports)

    assert path.read_bytes().endswith(b"\n")
    assert dumps_reports(load_reports(path)) == dumps_reports(reports)


def test_load_reports_requires_array(tmp_path: Path) -> None:
    path = tmp_path / "reports.json"
    path.write_text('{"entity": "product"}', encoding="utf-8")

    with pytest.raises(ValueError, match="expected a JSON array"):
        load_reports(path)


def test_location_str() -> None:
    assert str(Location(path="a.py", line=3)) == "a.py:3"
    assert str(Location(path="a.py")) == "a.py"
