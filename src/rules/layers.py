"""Layer classification and dependency-direction checks."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING

from errors import ConfigError
from graph.algos import find_cycles
from parse.ast_imports import resolve_relative_import
from rules.config import ENTITY_PLACEHOLDERS
from utils import path_to_module, strip_source_suffix

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from parse.facts import ImportRef
    from rules.config import (
        CatalogConfig,
        EdgeDef,
        LayerDef,
        StackDef,
        UnclassifiedBehavior,
    )


@dataclass(frozen=True)
class ImportViolation:
    ref: ImportRef
    to_layer: str | None

    def describe(self, from_layer: str) -> str:
        if self.to_layer is None:
            return (
                f"'{self.ref.display()}' (unclassified) "
                f"is not allowed from '{from_layer}'"
            )
        return (
            f"'{self.ref.display()}' resolves to layer '{self.to_layer}', "
            f"which is not downstream of '{from_layer}'"
        )


def _strip_root(path: str, import_root: str) -> str | None:
    """Return ``path`` relative to ``import_root``, or None when outside it."""
    if not import_root:
        return path
    if path == import_root:
        return ""
    prefix = f"{import_root}/"
    if path.startswith(prefix):
        return path[len(prefix) :]
    return None


def layer_import_patterns(layer: LayerDef, import_root: str) -> tuple[str, ...]:
    """Patterns that classify an import target into ``layer``.

    The layer glob becomes a slash-separated stem relative to the stack's
    import root, with entity placeholders widened to ``*`` so that imports
    of other entities' files classify too.
    """
    stem = layer.glob
    for placeholder in ENTITY_PLACEHOLDERS:
        stem = stem.replace(placeholder, "*")
    stem = strip_source_suffix(stem)
    relative = _strip_root(stem, import_root)
    patterns = [relative if relative is not None else stem]
    patterns.extend(layer.modules)
    return tuple(patterns)


def classify_layer(
    candidates: Sequence[str],
    layers: Sequence[tuple[str, tuple[str, ...]]],
) -> str | None:
    """Classify import candidates into a layer.

    Uses first-match-wins semantics: candidates are tried most specific
    first, and for each candidate the first layer (in catalog order) with a
    matching pattern determines the layer.
    """
    for candidate in candidates:
        for name, patterns in layers:
            if any(fnmatchcase(candidate, pattern) for pattern in patterns):
                return name
    return None


def build_allowed_deps(
    stacks: Sequence[StackDef],
    layers: Sequence[LayerDef],
    edges: Sequence[EdgeDef] = (),
) -> dict[str, set[str]]:
    """Build a mapping of layer -> set of allowed downstream layers.

    Within a stack, a layer may depend on every layer at a strictly higher
    position (only the next higher position under ``strict_adjacency``).
    Shared layers (position 0) are handled by :func:`is_violation`.
    """
    allowed: dict[str, set[str]] = {layer.name: set() for layer in layers}

    for stack in stacks:
        chain = sorted(
            (
                layer
                for layer in layers
                if layer.stack == stack.name and not layer.shared
            ),
            key=lambda layer: (layer.position, layer.name),
        )
        positions = sorted({layer.position for layer in chain})
        for layer in chain:
            downstream = [p for p in positions if p > layer.position]
            if stack.strict_adjacency:
                downstream = downstream[:1]
            allowed[layer.name].update(
                other.name for other in chain if other.position in downstream
            )

    for edge in edges:
        allowed.setdefault(edge.from_layer, set()).update(
            target for target in edge.to if target != edge.from_layer
        )

    return allowed


def is_violation(
    from_layer: str,
    to_layer: str | None,
    allowed_deps: Mapping[str, set[str]],
    unclassified: UnclassifiedBehavior,
    shared_layers: frozenset[str] = frozenset(),
) -> bool:
    """Check if a dependency from one layer to another is a violation."""
    if to_layer is None:
        return unclassified == "deny"
    if to_layer == from_layer or to_layer in shared_layers:
        return False
    return to_layer not in allowed_deps.get(from_layer, set())


class LayerGraph:
    """Allowed dependency edges between layers, loaded once per catalog.

    Immutable after construction and shared across worker threads.
    """

    def __init__(self, config: CatalogConfig) -> None:
        self._layers = {layer.name: layer for layer in config.layers}
        self._stacks = {stack.name: stack for stack in config.stacks}
        self._path_aliases = sorted(
            config.settings.path_aliases.items(),
            key=lambda item: (-len(item[0]), item[0]),
        )
        self._unclassified = config.settings.unclassified
        self._shared = frozenset(
            layer.name for layer in config.layers if layer.shared
        )
        self._allowed = build_allowed_deps(config.stacks, config.layers, config.edges)
        self._edge_targets: dict[str, frozenset[str]] = {}
        for edge in config.edges:
            self._edge_targets[edge.from_layer] = self._edge_targets.get(
                edge.from_layer, frozenset()
            ).union(edge.to)
        self._patterns = tuple(
            (
                layer.name,
                layer_import_patterns(layer, self._stacks[layer.stack].import_root),
            )
            for layer in config.layers
        )

        cycles = find_cycles(self._allowed)
        if cycles:
            rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
            msg = f"layer graph must be acyclic; cycles found: {rendered}"
            raise ConfigError(msg)

    def allows(self, from_layer: str, to_layer: str | None) -> bool:
        return not is_violation(
            from_layer, to_layer, self._allowed, self._unclassified, self._shared
        )

    def import_candidates(
        self, ref: ImportRef, source_path: str, stack: str
    ) -> tuple[str, ...]:
        """Normalize an import to slash-separated stems, most specific first."""
        import_root = self._stacks[stack].import_root

        if ref.style == "module":
            module = ref.specifier
            if ref.level:
                relative = _strip_root(source_path, import_root) or source_path
                module = resolve_relative_import(
                    path_to_module(relative), ref.specifier, ref.level
                )
            base = module.replace(".", "/")
            candidates = [f"{base}/{name}" if base else name for name in ref.names]
            candidates.append(base)
            return tuple(dict.fromkeys(c for c in candidates if c))

        specifier = ref.specifier
        if specifier.startswith(("./", "../")) or specifier in (".", ".."):
            joined = posixpath.normpath(
                posixpath.join(posixpath.dirname(source_path), specifier)
            )
            relative = _strip_root(joined, import_root)
            target = relative if relative is not None else joined
        else:
            target = specifier
            for prefix, replacement in self._path_aliases:
                if specifier.startswith(prefix):
                    target = posixpath.normpath(
                        posixpath.join(replacement, specifier[len(prefix) :])
                    )
                    break
        return (strip_source_suffix(target),)

    def classify_import(
        self,
        ref: ImportRef,
        source_path: str,
        stack: str,
        from_layer: str | None = None,
    ) -> str | None:
        """Classify an import among the layers it can reach.

        Only layers of the importer's own stack are candidates, plus the
        targets of explicit edges out of ``from_layer``. Stacks may share
        directory stems (``app/...``) without their layers being confused.
        """
        candidates = [*self.import_candidates(ref, source_path, stack)]
        if ref.style == "module" and not ref.level:
            candidates.append(ref.specifier)
        extra: frozenset[str] = frozenset()
        if from_layer is not None:
            extra = self._edge_targets.get(from_layer, frozenset())
        patterns = [
            (name, globs)
            for name, globs in self._patterns
            if self._layers[name].stack == stack or name in extra
        ]
        return classify_layer(candidates, patterns)


    def check_imports(
        self, from_layer: str, imports: Sequence[ImportRef], source_path: str
    ) -> list[ImportViolation]:
        """Return every import of ``source_path`` that breaks the layer order."""
        stack = self._layers[from_layer].stack
        violations: list[ImportViolation] = []
        for ref in imports:
            to_layer = self.classify_import(ref, source_path, stack, from_layer)
            if not self.allows(from_layer, to_layer):
                violations.append(ImportViolation(ref=ref, to_layer=to_layer))
        violations.sort(key=lambda v: (v.ref.line, v.ref.display()))
        return violations


__all__ = [
    "ImportViolation",
    "LayerGraph",
    "build_allowed_deps",
    "classify_layer",
    "is_violation",
    "layer_import_patterns",
]
