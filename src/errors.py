"""Error taxonomy for compliance-core.

Only environment-level failures are exceptions. Rule violations are ordinary
``Finding`` values and never raised.
"""

from __future__ import annotations


class ComplianceError(Exception):
    """Base class for all engine errors."""


class ConfigError(ComplianceError):
    """Raised when the rule catalog or layer graph cannot be loaded.

    Fatal: raised before any entity is scanned.
    """


class DirectoryAccessError(ComplianceError):
    """Raised when the root directory of a run is missing or unreadable."""


class FileReadTimeout(ComplianceError):
    """Raised when reading a single source file exceeds the read timeout.

    Never propagates out of a run; the affected findings degrade to FAIL.
    """


class ExtractionError(ComplianceError):
    """Raised when an extractor cannot derive structural facts from a file.

    Structural predicates degrade to FAIL; token predicates still run.
    """


__all__ = [
    "ComplianceError",
    "ConfigError",
    "DirectoryAccessError",
    "ExtractionError",
    "FileReadTimeout",
]
