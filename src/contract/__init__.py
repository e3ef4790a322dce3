"""Stable report contract for compliance-core.

Renderers (markdown, CI annotations) depend only on these exports.
"""

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
from contract.report import (
    canonical_bytes,
    dumps_reports,
    load_reports,
    report_to_dict,
    write_reports,
)

__all__ = [
    "REPORT_SCHEMA_VERSION",
    "Finding",
    "Location",
    "Outcome",
    "Report",
    "Severity",
    "Summary",
    "Verdict",
    "canonical_bytes",
    "dumps_reports",
    "load_reports",
    "report_to_dict",
    "write_reports",
]
