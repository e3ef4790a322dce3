"""Source extraction for compliance-core."""

from __future__ import annotations

from pathlib import PurePosixPath

from parse.ast_imports import extract_imports, resolve_relative_import
from parse.facts import (
    FileFacts,
    ImportRef,
    Signature,
    StateAssignment,
    Structure,
    StructureExtractor,
    TypeDecl,
    build_file_facts,
)
from parse.tokens import TokenPattern, scan_tokens
from parse.treesitter_python import PythonExtractor
from parse.treesitter_typescript import TypeScriptExtractor

_PYTHON = PythonExtractor()
_TYPESCRIPT = TypeScriptExtractor()

# Extension -> extractor mapping.
_EXTRACTORS_BY_SUFFIX: dict[str, StructureExtractor] = {
    ".py": _PYTHON,
    ".pyi": _PYTHON,
    ".ts": _TYPESCRIPT,
    ".mts": _TYPESCRIPT,
    ".cts": _TYPESCRIPT,
    ".tsx": _TYPESCRIPT,
    ".js": _TYPESCRIPT,
    ".mjs": _TYPESCRIPT,
    ".cjs": _TYPESCRIPT,
    ".jsx": _TYPESCRIPT,
}


def extractor_for(relative_path: str) -> StructureExtractor | None:
    """Return the structural extractor for a file, or None for unknown suffixes."""
    return _EXTRACTORS_BY_SUFFIX.get(PurePosixPath(relative_path).suffix.lower())


__all__ = [
    "FileFacts",
    "ImportRef",
    "PythonExtractor",
    "Signature",
    "StateAssignment",
    "Structure",
    "StructureExtractor",
    "TokenPattern",
    "TypeDecl",
    "TypeScriptExtractor",
    "build_file_facts",
    "extract_imports",
    "extractor_for",
    "resolve_relative_import",
    "scan_tokens",
]
