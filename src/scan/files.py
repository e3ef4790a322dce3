"""Entity file resolution and discovery."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, cast

from gitignore_parser import parse_gitignore  # type: ignore[import-untyped]

from errors import DirectoryAccessError
from utils import to_pascal_case, to_snake_case

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator, Sequence

    from rules.config import LayerDef

logger = logging.getLogger(__name__)

ENTITY_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_\-]*$")
_GLOB_CHARS = frozenset("*?[")
_PLACEHOLDER_RE = re.compile(r"\{entity\}|\{Entity\}")


@dataclass(frozen=True)
class EntityFileSet:
    """Layer name -> root-relative POSIX path (None when absent)."""

    entity: str
    root: Path
    files: dict[str, str | None] = field(default_factory=dict)

    def path_for(self, layer: str) -> str | None:
        return self.files.get(layer)

    @property
    def present(self) -> dict[str, str]:
        return {layer: path for layer, path in self.files.items() if path is not None}


def check_root(root: Path) -> Path:
    """Return the resolved root, or raise DirectoryAccessError."""
    try:
        resolved = root.resolve(strict=True)
    except OSError as e:
        msg = f"Root directory not found: {root}"
        raise DirectoryAccessError(msg) from e

    if not resolved.is_dir():
        msg = f"Root is not a directory: {root}"
        raise DirectoryAccessError(msg)

    try:
        next(resolved.iterdir(), None)
    except OSError as e:
        msg = f"Root directory is not readable: {root}: {e}"
        raise DirectoryAccessError(msg) from e

    return resolved


def _is_within_root(path: Path, root: Path) -> bool:
    """Return True when the resolved path stays within the resolved root."""
    try:
        root_resolved = root.resolve()
        path_resolved = path.resolve()
    except OSError:
        return False

    try:
        path_resolved.relative_to(root_resolved)
    except ValueError:
        return False

    return True


def _has_glob_chars(pattern: str) -> bool:
    return any(char in _GLOB_CHARS for char in pattern)


def substitute_entity(glob: str, entity: str) -> str:
    """Fill ``{entity}`` verbatim and ``{Entity}`` with the PascalCase name."""
    return glob.replace("{entity}", entity).replace("{Entity}", to_pascal_case(entity))


def _resolve_layer_file(root: Path, pattern: str) -> str | None:
    if _has_glob_chars(pattern):
        candidates = sorted(
            path.relative_to(root).as_posix()
            for path in root.glob(pattern)
            if path.is_file() and _is_within_root(path, root)
        )
        return candidates[0] if candidates else None

    path = root / pattern
    if not path.is_file() or not _is_within_root(path, root):
        return None
    return pattern


def resolve_entity_files(
    entity: str, root: Path, layers: Sequence[LayerDef]
) -> EntityFileSet:
    """Resolve the expected file of every layer for ``entity``.

    Absent files map to None. Files reached through symlinks that leave the
    root count as absent.

    Raises:
        DirectoryAccessError: If the root is missing or unreadable.
        ValueError: If ``entity`` is not a plain name.
    """
    if not ENTITY_NAME_RE.match(entity):
        msg = f"invalid entity name {entity!r}"
        raise ValueError(msg)

    resolved_root = check_root(root)
    files = {
        layer.name: _resolve_layer_file(
            resolved_root, substitute_entity(layer.glob, entity)
        )
        for layer in layers
    }
    logger.debug(
        "Resolved %s: %d of %d layer files present",
        entity,
        sum(path is not None for path in files.values()),
        len(files),
    )
    return EntityFileSet(entity=entity, root=resolved_root, files=files)


def _iter_gitignore_files(root: Path) -> list[Path]:
    """Return sorted list of .gitignore files under root (including root)."""
    gitignore_paths = [root / ".gitignore"]
    gitignore_paths.extend(root.rglob(".gitignore"))
    unique_paths = {path for path in gitignore_paths if path.is_file()}
    return sorted(unique_paths, key=lambda p: p.relative_to(root).as_posix())


def _build_gitignore_matcher(
    root: Path,
    *,
    nested_gitignore: bool,
) -> Callable[[str], bool] | None:
    if not nested_gitignore:
        gitignore_path = root / ".gitignore"
        if gitignore_path.is_file():
            return cast("Callable[[str], bool]", parse_gitignore(gitignore_path))
        return None

    gitignore_paths = _iter_gitignore_files(root)
    if not gitignore_paths:
        return None

    matchers = [parse_gitignore(path) for path in gitignore_paths]

    def matches(path_str: str) -> bool:
        for matcher in matchers:
            try:
                if matcher(path_str):
                    return True
            except ValueError:
                continue
        return False

    return matches


def _glob_to_regex(glob: str) -> re.Pattern[str]:
    """Compile a layer glob into a regex capturing the entity placeholder."""
    parts: list[str] = []
    pos = 0
    for match in _PLACEHOLDER_RE.finditer(glob):
        parts.append(_translate_literal(glob[pos : match.start()]))
        group = "snake" if match.group() == "{entity}" else "pascal"
        if f"(?P<{group}>" in "".join(parts):
            parts.append(f"(?P={group})")
        else:
            parts.append(f"(?P<{group}>[A-Za-z0-9][A-Za-z0-9_\\-]*)")
        pos = match.end()
    parts.append(_translate_literal(glob[pos:]))
    return re.compile("".join(parts) + r"\Z")


def _translate_literal(text: str) -> str:
    out: list[str] = []
    for char in text:
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(char))
    return "".join(out)


def _search_base(root: Path, glob: str) -> Path:
    """Deepest directory of ``glob`` free of placeholders and wildcards."""
    base = root
    for part in glob.split("/")[:-1]:
        if _PLACEHOLDER_RE.search(part) or _has_glob_chars(part):
            break
        base = base / part
    return base


def _iter_candidate_files(
    base: Path,
    root: Path,
    gitignore_matches: Callable[[str], bool] | None,
) -> Iterator[str]:
    if not base.is_dir():
        return
    for path in base.rglob("*"):
        if path.is_symlink() or not path.is_file():
            continue
        if gitignore_matches is not None and gitignore_matches(str(path)):
            continue
        yield path.relative_to(root).as_posix()


def discover_entities(
    root: Path,
    layers: Sequence[LayerDef],
    *,
    nested_gitignore: bool = False,
    exclude: Iterable[str] = (),
) -> list[str]:
    """Find every entity name captured by any layer glob.

    ``{Entity}``-only globs yield the snake_case form of the captured name.
    Ignored files (per ``.gitignore``), symlinks and names in ``exclude`` are
    skipped.

    Returns:
        Sorted, de-duplicated entity names.
    """
    resolved_root = check_root(root)
    gitignore_matches = _build_gitignore_matcher(
        resolved_root, nested_gitignore=nested_gitignore
    )

    found: set[str] = set()
    for layer in layers:
        regex = _glob_to_regex(layer.glob)
        base = _search_base(resolved_root, layer.glob)
        for rel_path in _iter_candidate_files(base, resolved_root, gitignore_matches):
            match = regex.match(rel_path)
            if match is None:
                continue
            groups = match.groupdict()
            if groups.get("snake"):
                found.add(groups["snake"])
            elif groups.get("pascal"):
                found.add(to_snake_case(groups["pascal"]))

    entities = sorted(found.difference(exclude))
    logger.info("Discovered %d entities under %s", len(entities), resolved_root)
    return entities


__all__ = [
    "ENTITY_NAME_RE",
    "EntityFileSet",
    "check_root",
    "discover_entities",
    "resolve_entity_files",
    "substitute_entity",
]
