"""Rule evaluation, aggregation and parallel runs."""

from check.aggregate import build_report, compute_verdict
from check.matcher import LoadedFile, evaluate_rule
from check.runner import ALL_ENTITIES, check_entities, run_compliance

__all__ = [
    "ALL_ENTITIES",
    "LoadedFile",
    "build_report",
    "check_entities",
    "compute_verdict",
    "evaluate_rule",
    "run_compliance",
]
