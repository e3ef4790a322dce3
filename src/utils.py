"""Shared utilities for compliance-core."""

from __future__ import annotations

import re
from pathlib import Path

_SOURCE_SUFFIXES = (".py", ".pyi", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
_WORD_SPLIT = re.compile(r"[_\-\s]+")
_PASCAL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def path_to_module(file_path: str | Path) -> str:
    """Convert a file path to a Python module name.

    Args:
        file_path: Path relative to an import root (e.g., "app/services/x.py")

    Returns:
        Module name (e.g., "app.services.x")

    Examples:
        >>> path_to_module("app/services/product_service.py")
        'app.services.product_service'
        >>> path_to_module("app/services/__init__.py")
        'app.services'
        >>> path_to_module(Path("src/app/main.py"))
        'app.main'
    """
    path_str = file_path.as_posix() if isinstance(file_path, Path) else str(file_path)
    normalized_parts = [part for part in path_str.replace("\\", "/").split("/") if part]

    # src/<package>/... maps to <package>.<submodules>.
    module_parts = (
        normalized_parts[1:]
        if len(normalized_parts) >= 2 and normalized_parts[0] == "src"
        else normalized_parts
    )

    if module_parts and module_parts[-1].endswith((".py", ".pyi")):
        module_parts[-1] = module_parts[-1].rsplit(".", 1)[0]

    if module_parts and module_parts[-1] == "__init__":
        module_parts = module_parts[:-1]

    return ".".join(module_parts)


def strip_source_suffix(path: str) -> str:
    """Drop a known source-file extension and a trailing ``/index`` segment.

    Examples:
        >>> strip_source_suffix("components/product/ProductTable.tsx")
        'components/product/ProductTable'
        >>> strip_source_suffix("contexts/index.ts")
        'contexts'
    """
    for suffix in _SOURCE_SUFFIXES:
        if path.endswith(suffix):
            path = path[: -len(suffix)]
            break
    if path.endswith("/index"):
        path = path[: -len("/index")]
    return path


def to_pascal_case(name: str) -> str:
    """Convert an entity name to PascalCase.

    Examples:
        >>> to_pascal_case("order_item")
        'OrderItem'
        >>> to_pascal_case("product")
        'Product'
    """
    words = (word for word in _WORD_SPLIT.split(name) if word)
    return "".join(word[:1].upper() + word[1:] for word in words)


def to_snake_case(name: str) -> str:
    """Convert a PascalCase or camelCase name to snake_case.

    Examples:
        >>> to_snake_case("OrderItem")
        'order_item'
    """
    return _PASCAL_BOUNDARY.sub("_", name).lower()
