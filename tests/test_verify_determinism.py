from __future__ import annotations

import shutil
from datetime import UTC, datetime
from pathlib import Path

import pytest

import verify.verify
from check.runner import run_compliance
from contract.models import Report
from contract.report import write_reports
from verify.verify import DeterminismResult, compare_reports, verify_determinism

_FIXTURE_APP = Path(__file__).parent / "fixtures" / "fullstack_app"


def _copy_fixture_app(root: Path) -> None:
    shutil.copytree(_FIXTURE_APP, root)


def _report(entity: str, *, generated_at: datetime | None = None) -> Report:
    return Report(
        entity=entity,
        generated_at=generated_at or datetime(2024, 1, 1, tzinfo=UTC),
    )


def test_verify_determinism_serial_vs_parallel(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_fixture_app(root)

    result = verify_determinism(root=root, workers=4)

    assert result == DeterminismResult(ok=True)


def test_verify_determinism_against_baseline(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_fixture_app(root)
    baseline = tmp_path / "reports.json"
    write_reports(baseline, run_compliance(None, root))

    assert verify_determinism(root=root, baseline=baseline).ok

    service = root / "backend" / "app" / "services" / "product_service.py"
    service.write_text(
        service.read_text(encoding="utf-8").replace("HTTPException", "LookupError"),
        encoding="utf-8",
    )

    result = verify_determinism(root=root, baseline=baseline)

    assert not result.ok
    assert result.mismatches == ("product",)


def test_verify_determinism_requires_baseline_file(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_fixture_app(root)

    with pytest.raises(FileNotFoundError, match="Baseline reports file does not exist"):
        verify_determinism(root=root, baseline=tmp_path / "missing.json")


def test_compare_reports_ignores_timestamps_and_sorts_differences() -> None:
    expected = [_report("b"), _report("a"), _report("c")]
    actual = [
        _report("a", generated_at=datetime(2030, 1, 1, tzinfo=UTC)),
        _report("d"),
        _report("c").model_copy(update={"schema_version": 2}),
    ]

    result = compare_reports(expected, actual)

    assert result == DeterminismResult(
        ok=False, mismatches=("c",), missing=("b",), extra=("d",)
    )


def test_verify_determinism_reports_scheduling_differences(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "app"
    _copy_fixture_app(root)
    calls: list[int | None] = []

    def _fake_run_compliance(
        entity: str | None,
        root: Path,
        *,
        catalog: object,
        workers: int,
        now: datetime,
    ) -> list[Report]:
        calls.append(workers)
        return [_report("product")] if workers == 1 else [_report("category")]

    monkeypatch.setattr(verify.verify, "run_compliance", _fake_run_compliance)

    result = verify_determinism(root=root, workers=3)

    assert calls == [1, 3]
    assert result.missing == ("product",)
    assert result.extra == ("category",)
