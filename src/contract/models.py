"""Report models produced for the rendering collaborator.

This module defines the stable engine-to-renderer boundary: every field here
is part of the JSON contract.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Report schema version (report-v1).
REPORT_SCHEMA_VERSION = 1


class Severity(str, Enum):
    """Outcome a rule produces when its predicate is violated."""

    FAIL = "FAIL"
    WARN = "WARN"


class Outcome(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class Verdict(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    FAIL = "FAIL"


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    line: int | None = None

    def __str__(self) -> str:
        if self.line is None:
            return self.path
        return f"{self.path}:{self.line}"


class Finding(BaseModel):
    """The result of one rule evaluated against one entity."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    layer: str
    entity: str
    severity: Severity
    outcome: Outcome
    location: Location | None = None
    message: str | None = None


class Summary(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: int = 0
    warned: int = 0
    failed: int = 0
    not_applicable: int = 0
    total: int = 0


class Report(BaseModel):
    """Compliance report for a single entity."""

    model_config = ConfigDict(frozen=True)

    schema_version: int = Field(default=REPORT_SCHEMA_VERSION)
    entity: str
    generated_at: datetime
    findings: list[Finding] = Field(default_factory=list)
    summary: Summary = Field(default_factory=Summary)
    verdict: Verdict = Verdict.PASS


__all__ = [
    "REPORT_SCHEMA_VERSION",
    "Finding",
    "Location",
    "Outcome",
    "Report",
    "Severity",
    "Summary",
    "Verdict",
]
