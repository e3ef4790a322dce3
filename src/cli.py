"""Command-line interface for compliance-core."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from check.runner import ALL_ENTITIES, run_compliance
from contract.models import Outcome, Verdict
from contract.report import dumps_reports, write_reports
from errors import ConfigError, DirectoryAccessError
from rules.catalog import RuleCatalog
from verify.verify import verify_determinism

if TYPE_CHECKING:
    from collections.abc import Sequence

    from contract.models import Report

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2


def _add_common_paths(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Project root (default: .)",
    )
    parser.add_argument(
        "--catalog",
        default=None,
        help="Rule catalog TOML (default: <root>/compliance.toml or built-in)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (-vv for debug output)",
    )


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--entity",
        default=ALL_ENTITIES,
        help="Entity name to check (default: all discovered entities)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker pool size (default: catalog setting)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="compliance")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser("check", help="Check entities against rules")
    _add_common_paths(check_parser)
    _add_run_options(check_parser)
    check_parser.add_argument(
        "--format",
        choices=("json", "summary"),
        default="summary",
        help="Output format on stdout (default: summary)",
    )
    check_parser.add_argument(
        "--out",
        default=None,
        help="Also write JSON reports to this file",
    )
    check_parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat a WARN verdict as a failure",
    )

    verify_parser = subparsers.add_parser(
        "verify", help="Verify determinism of reports"
    )
    _add_common_paths(verify_parser)
    _add_run_options(verify_parser)
    verify_parser.add_argument(
        "--baseline",
        default=None,
        help="Compare against reports previously written with --out",
    )

    validate_parser = subparsers.add_parser(
        "validate", help="Validate the rule catalog"
    )
    _add_common_paths(validate_parser)

    return parser


def _configure_logging(verbosity: int) -> None:
    if verbosity <= 0:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbosity > 1 else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _resolve_catalog(catalog: str | None) -> Path | None:
    if catalog is None:
        return None
    return Path(catalog).expanduser().resolve()


def _format_summary(reports: Sequence[Report]) -> str:
    lines: list[str] = []
    for report in reports:
        summary = report.summary
        lines.append(
            f"{report.entity}: {report.verdict.value} "
            f"({summary.passed} passed, {summary.warned} warned, "
            f"{summary.failed} failed, {summary.not_applicable} n/a)"
        )
        for finding in report.findings:
            if finding.outcome not in (Outcome.FAIL, Outcome.WARN):
                continue
            where = f" {finding.location}" if finding.location else ""
            lines.append(
                f"  {finding.outcome.value} {finding.rule_id}{where}: {finding.message}"
            )
    return "\n".join(lines) + "\n" if lines else "no entities found\n"


def _exit_code(reports: Sequence[Report], *, strict: bool) -> int:
    verdicts = {report.verdict for report in reports}
    if Verdict.FAIL in verdicts:
        return EXIT_FAILED
    if strict and Verdict.WARN in verdicts:
        return EXIT_FAILED
    return EXIT_OK


def _handle_check(args: argparse.Namespace, root: Path) -> int:
    reports = run_compliance(
        args.entity,
        root,
        _resolve_catalog(args.catalog),
        workers=args.workers,
    )
    if args.out is not None:
        write_reports(Path(args.out).expanduser().resolve(), reports)

    if args.format == "json":
        sys.stdout.buffer.write(dumps_reports(reports))
        sys.stdout.flush()
    else:
        sys.stdout.write(_format_summary(reports))
    return _exit_code(reports, strict=args.strict)


def _handle_verify(args: argparse.Namespace, root: Path) -> int:
    baseline = None
    if args.baseline is not None:
        baseline = Path(args.baseline).expanduser().resolve()
    try:
        result = verify_determinism(
            root=root,
            catalog_path=_resolve_catalog(args.catalog),
            entity=args.entity,
            workers=args.workers,
            baseline=baseline,
        )
    except FileNotFoundError as exc:
        sys.stderr.write(f"baseline: {baseline}\n")
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_ERROR
    if not result.ok:
        for label, entities in (
            ("missing", result.missing),
            ("extra", result.extra),
            ("mismatches", result.mismatches),
        ):
            for entity in entities:
                sys.stderr.write(f"{label}: {entity}\n")
        return EXIT_FAILED
    return EXIT_OK


def _handle_validate(args: argparse.Namespace, root: Path) -> int:
    catalog = RuleCatalog.load(root, _resolve_catalog(args.catalog))
    sys.stdout.write(
        f"catalog ok: {len(catalog.config.stacks)} stacks, "
        f"{len(catalog.layers)} layers, {len(catalog.rules)} rules\n"
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    root = Path(args.root).expanduser().resolve()

    handlers = {
        "check": _handle_check,
        "verify": _handle_verify,
        "validate": _handle_validate,
    }
    try:
        return handlers[args.command](args, root)
    except ConfigError as exc:
        sys.stderr.write(f"catalog: {exc}\n")
        return EXIT_ERROR
    except DirectoryAccessError as exc:
        sys.stderr.write(f"root: {exc}\n")
        return EXIT_ERROR
    except ValueError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
