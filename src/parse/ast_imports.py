"""AST-based import analysis for Python sources."""

from __future__ import annotations

import ast

from errors import ExtractionError
from parse.facts import ImportRef


def _process_import_node(node: ast.Import, imports: list[ImportRef]) -> None:
    """Process a standard import node (import x)."""
    for name in node.names:
        imports.append(ImportRef(specifier=name.name, line=node.lineno))


def _process_import_from_node(node: ast.ImportFrom, imports: list[ImportRef]) -> None:
    """Process a from-import node (from x import y)."""
    names = tuple(name.name for name in node.names if name.name != "*")
    imports.append(
        ImportRef(
            specifier=node.module or "",
            line=node.lineno,
            names=names,
            level=node.level,
        )
    )


def extract_imports(source: str, filename: str = "<unknown>") -> list[ImportRef]:
    """Extract import statements from Python source using AST.

    Args:
        source: Python source text
        filename: Path used in error messages

    Returns:
        Import references ordered by line, then specifier.

    Raises:
        ExtractionError: If the source does not parse or nests too deeply.
    """
    try:
        tree = ast.parse(source, filename)
    except (SyntaxError, ValueError, RecursionError) as exc:
        # RecursionError: nesting too deep for the AST builder
        lineno = getattr(exc, "lineno", None)
        where = f"{filename}:{lineno}" if lineno else filename
        msg = f"cannot parse {where}: {exc.__class__.__name__}: {exc}"
        raise ExtractionError(msg) from exc

    imports: list[ImportRef] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            _process_import_node(node, imports)
        elif isinstance(node, ast.ImportFrom):
            _process_import_from_node(node, imports)

    imports.sort(key=lambda ref: (ref.line, ref.level, ref.specifier, ref.names))
    return imports


def resolve_relative_import(
    importing_module: str,
    relative_module: str,
    level: int,
) -> str:
    """Resolve a relative import to an absolute module name.

    Args:
        importing_module: The module doing the import (e.g., "pkg.sub.mod")
        relative_module: The relative module name (e.g., "foo" from ".foo")
        level: Number of dots (1 for ".", 2 for "..", etc.)

    Returns:
        Absolute module name (e.g., "pkg.sub.foo")

    Examples:
        >>> resolve_relative_import("pkg.sub.mod", "foo", 1)
        'pkg.sub.foo'
        >>> resolve_relative_import("pkg.sub.mod", "", 1)
        'pkg.sub'
        >>> resolve_relative_import("pkg.sub.mod", "bar", 2)
        'pkg.bar'
    """
    parts = importing_module.split(".")

    if level > len(parts):
        return relative_module or importing_module

    base_parts = parts[: len(parts) - level]

    if relative_module:
        return ".".join([*base_parts, relative_module])
    if base_parts:
        return ".".join(base_parts)
    return importing_module
