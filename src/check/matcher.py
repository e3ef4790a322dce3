"""Rule evaluation over extracted file facts.

Every function here is pure: inputs are immutable facts, the output is a
single ``Finding`` per (entity, rule).
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Any

from contract.models import Finding, Location, Outcome
from rules.predicates import (
    ForbidsToken,
    ImportDirectionAllowed,
    MutuallyExclusiveTokens,
    RequiresInheritance,
    RequiresToken,
    StatelessConstructor,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from parse.facts import FileFacts, TypeDecl
    from rules.catalog import Rule
    from rules.layers import LayerGraph
    from scan.files import EntityFileSet


@dataclass(frozen=True)
class LoadedFile:
    """Outcome of reading and extracting one layer file.

    Exactly one of ``facts`` and ``error`` is set; ``error`` means the file
    could not be read (I/O failure or read timeout).
    """

    path: str
    facts: FileFacts | None = None
    error: str | None = None


@dataclass(frozen=True)
class Violation:
    line: int | None
    message: str


def _requires_token(
    predicate: RequiresToken, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    if predicate.scope == "file":
        if facts.contains(predicate.pattern):
            return None
        return Violation(None, f"missing required token {predicate.pattern.display()}")

    offenders = [
        signature
        for signature in facts.signatures
        if signature.public
        and not any(predicate.matches_parameter(param) for param in signature.params)
    ]
    if not offenders:
        return None
    names = ", ".join(signature.qualified_name for signature in offenders)
    return Violation(
        offenders[0].line,
        f"public signatures without a {predicate.token!r} parameter: {names}",
    )


def _forbids_token(
    predicate: ForbidsToken, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    lines = facts.lines_for(predicate.pattern)
    if not lines:
        return None
    return Violation(lines[0], f"forbidden token {predicate.pattern.display()} found")


def _ancestors(decl: TypeDecl, by_name: Mapping[str, TypeDecl]) -> set[str]:
    """Transitive base names of ``decl`` within one file (last dotted segment)."""
    seen: set[str] = set()
    stack = [base.rsplit(".", 1)[-1] for base in decl.bases]
    while stack:
        name = stack.pop()
        if name in seen:
            continue
        seen.add(name)
        parent = by_name.get(name)
        if parent is not None:
            stack.extend(base.rsplit(".", 1)[-1] for base in parent.bases)
    return seen


def _requires_inheritance(
    predicate: RequiresInheritance, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    base = predicate.base_name.rsplit(".", 1)[-1]
    by_name = {decl.name: decl for decl in facts.types}

    if predicate.class_pattern is None:
        if any(base in _ancestors(decl, by_name) for decl in facts.types):
            return None
        return Violation(None, f"no type derives from {predicate.base_name!r}")

    targets = [
        decl for decl in facts.types if fnmatchcase(decl.name, predicate.class_pattern)
    ]
    if not targets:
        return Violation(None, f"no type matches {predicate.class_pattern!r}")
    missing = [decl for decl in targets if base not in _ancestors(decl, by_name)]
    if not missing:
        return None
    names = ", ".join(decl.name for decl in missing)
    return Violation(
        missing[0].line, f"types not deriving from {predicate.base_name!r}: {names}"
    )


def _import_direction(
    predicate: ImportDirectionAllowed, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    violations = graph.check_imports(layer, facts.imports, facts.path)
    if not violations:
        return None
    return Violation(
        violations[0].ref.line,
        "; ".join(violation.describe(layer) for violation in violations),
    )


def _stateless_constructor(
    predicate: StatelessConstructor, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    stored = [
        assignment
        for assignment in facts.state_assignments
        if predicate.matches_parameter(assignment.parameter)
    ]
    if not stored:
        return None
    described = ", ".join(f"{a.owner}.{a.field} = {a.parameter}" for a in stored)
    return Violation(stored[0].line, f"constructor stores instance state: {described}")


def _mutually_exclusive(
    predicate: MutuallyExclusiveTokens, facts: FileFacts, layer: str, graph: LayerGraph
) -> Violation | None:
    lines_a = facts.lines_for(predicate.pattern_a)
    lines_b = facts.lines_for(predicate.pattern_b)
    if not lines_a or not lines_b:
        return None
    return Violation(
        min(lines_a[0], lines_b[0]),
        f"{predicate.pattern_a.display()} (line {lines_a[0]}) and "
        f"{predicate.pattern_b.display()} (line {lines_b[0]}) are mutually exclusive",
    )


Evaluator = Callable[[Any, "FileFacts", str, "LayerGraph"], "Violation | None"]

# Predicate type -> evaluator mapping.
_EVALUATORS: dict[type, Evaluator] = {
    RequiresToken: _requires_token,
    ForbidsToken: _forbids_token,
    RequiresInheritance: _requires_inheritance,
    ImportDirectionAllowed: _import_direction,
    StatelessConstructor: _stateless_constructor,
    MutuallyExclusiveTokens: _mutually_exclusive,
}


def evaluate_rule(
    rule: Rule,
    file_set: EntityFileSet,
    loaded: Mapping[str, LoadedFile],
    graph: LayerGraph,
) -> Finding:
    """Evaluate one rule against the entity's file for the rule's layer.

    An absent file yields NOT_APPLICABLE without invoking the predicate. An
    unreadable file, or a structural predicate on a file whose structure
    could not be extracted, yields FAIL.
    """

    def finding(
        outcome: Outcome, location: Location | None = None, message: str | None = None
    ) -> Finding:
        return Finding(
            rule_id=rule.id,
            layer=rule.layer,
            entity=file_set.entity,
            severity=rule.severity,
            outcome=outcome,
            location=location,
            message=message,
        )

    path = file_set.path_for(rule.layer)
    if path is None:
        return finding(Outcome.NOT_APPLICABLE, message="no file for layer")

    entry = loaded.get(rule.layer)
    if entry is None or entry.facts is None:
        reason = entry.error if entry is not None and entry.error else "not loaded"
        return finding(Outcome.FAIL, Location(path=path), f"file unreadable: {reason}")

    facts = entry.facts
    if rule.predicate.requires_structure() and facts.structure_error is not None:
        return finding(
            Outcome.FAIL,
            Location(path=path),
            f"structural facts unavailable: {facts.structure_error}",
        )

    evaluator = _EVALUATORS[type(rule.predicate)]
    violation = evaluator(rule.predicate, facts, rule.layer, graph)
    if violation is None:
        return finding(Outcome.PASS, Location(path=path))

    return finding(
        Outcome(rule.severity.value),
        Location(path=path, line=violation.line),
        violation.message,
    )


__all__ = ["LoadedFile", "Violation", "evaluate_rule"]
