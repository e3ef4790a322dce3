"""Structural facts extracted from one source file.

``FileFacts`` is the only view of a source file the matcher ever sees. It is
derived on every run and never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, Protocol

from errors import ExtractionError
from parse.tokens import TokenPattern, scan_tokens

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

ImportStyle = Literal["module", "path"]


@dataclass(frozen=True)
class ImportRef:
    """An import statement as written in source.

    ``style`` is "module" for dotted Python modules (``level`` counts the
    leading dots of a relative import) and "path" for slash-separated
    specifiers such as ``./ProductTable`` or ``@/services/api``.
    """

    specifier: str
    line: int
    names: tuple[str, ...] = ()
    level: int = 0
    style: ImportStyle = "module"

    def display(self) -> str:
        if self.style == "module" and self.level:
            return f"{'.' * self.level}{self.specifier}"
        return self.specifier


@dataclass(frozen=True)
class Signature:
    name: str
    line: int
    params: tuple[str, ...]
    owner: str | None = None
    public: bool = True

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}.{self.name}" if self.owner else self.name


@dataclass(frozen=True)
class TypeDecl:
    name: str
    line: int
    bases: tuple[str, ...] = ()


@dataclass(frozen=True)
class StateAssignment:
    """A constructor parameter stored on the instance (``self.x = param``)."""

    owner: str
    field: str
    parameter: str
    line: int


@dataclass(frozen=True)
class Structure:
    imports: tuple[ImportRef, ...] = ()
    signatures: tuple[Signature, ...] = ()
    types: tuple[TypeDecl, ...] = ()
    state_assignments: tuple[StateAssignment, ...] = ()


@dataclass(frozen=True)
class FileFacts:
    path: str
    line_count: int
    token_hits: Mapping[TokenPattern, tuple[int, ...]] = field(default_factory=dict)
    structure: Structure = field(default_factory=Structure)
    structure_error: str | None = None

    @property
    def imports(self) -> tuple[ImportRef, ...]:
        return self.structure.imports

    @property
    def signatures(self) -> tuple[Signature, ...]:
        return self.structure.signatures

    @property
    def types(self) -> tuple[TypeDecl, ...]:
        return self.structure.types

    @property
    def state_assignments(self) -> tuple[StateAssignment, ...]:
        return self.structure.state_assignments

    def lines_for(self, pattern: TokenPattern) -> tuple[int, ...]:
        return self.token_hits.get(pattern, ())

    def contains(self, pattern: TokenPattern) -> bool:
        return bool(self.lines_for(pattern))


class StructureExtractor(Protocol):
    """Language-specific extraction of imports and declarations."""

    language: str

    def extract(self, source: str, relative_path: str) -> Structure: ...


def build_file_facts(
    source: str,
    relative_path: str,
    patterns: Iterable[TokenPattern],
    extractor: StructureExtractor | None,
) -> FileFacts:
    """Build facts for one file.

    Token hits are always computed from the raw text. A failing structural
    extraction is recorded on ``structure_error`` instead of raising, so
    token-based rules still evaluate the file.
    """
    token_hits = scan_tokens(source, patterns)
    line_count = len(source.splitlines())

    if extractor is None:
        suffix = relative_path.rsplit(".", 1)[-1] if "." in relative_path else ""
        return FileFacts(
            path=relative_path,
            line_count=line_count,
            token_hits=token_hits,
            structure_error=f"no structural extractor for '.{suffix}' files",
        )

    try:
        structure = extractor.extract(source, relative_path)
    except ExtractionError as exc:
        return FileFacts(
            path=relative_path,
            line_count=line_count,
            token_hits=token_hits,
            structure_error=str(exc),
        )

    return FileFacts(
        path=relative_path,
        line_count=line_count,
        token_hits=token_hits,
        structure=structure,
    )


__all__ = [
    "FileFacts",
    "ImportRef",
    "ImportStyle",
    "Signature",
    "StateAssignment",
    "Structure",
    "StructureExtractor",
    "TypeDecl",
    "build_file_facts",
]
