"""Tree-sitter based declaration extraction for Python sources."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from tree_sitter import Language, Node, Parser
from tree_sitter_python import language as get_python_language

from parse.ast_imports import extract_imports
from parse.facts import Signature, StateAssignment, Structure, TypeDecl

if TYPE_CHECKING:
    from collections.abc import Iterator

_LOCAL = threading.local()

_PARAMETER_NAME_TYPES = frozenset({"default_parameter", "typed_default_parameter"})
_WRAPPED_NAME_TYPES = frozenset(
    {"list_splat_pattern", "dictionary_splat_pattern", "typed_parameter"}
)
_NESTED_SCOPE_TYPES = frozenset({"function_definition", "class_definition", "lambda"})


def _get_parser() -> Parser:
    """Return this thread's Tree-sitter parser for Python."""
    parser = getattr(_LOCAL, "parser", None)
    if parser is None:
        parser = Parser(Language(get_python_language()))
        _LOCAL.parser = parser
    return parser


def _text(node: Node | None) -> str:
    if node is None or not node.text:
        return ""
    return node.text.decode("utf8")


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _parameter_names(parameters: Node | None) -> tuple[str, ...]:
    """Extract parameter names in declaration order."""
    if parameters is None:
        return ()

    names: list[str] = []
    for child in parameters.named_children:
        if child.type == "identifier":
            names.append(_text(child))
        elif child.type in _PARAMETER_NAME_TYPES:
            name = _text(child.child_by_field_name("name"))
            if name:
                names.append(name)
        elif child.type in _WRAPPED_NAME_TYPES:
            for sub in child.named_children:
                if sub.type == "identifier":
                    names.append(_text(sub))
                    break
                if sub.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                    names.extend(_parameter_names(sub))
                    break
    return tuple(names)


def _extract_base_classes(node: Node) -> tuple[str, ...]:
    """Extract base class names from a class definition node.

    Keyword arguments such as ``metaclass=ABCMeta`` are not bases.
    """
    superclasses = node.child_by_field_name("superclasses")
    if superclasses is None:
        return ()

    bases: list[str] = []
    for child in superclasses.named_children:
        if child.type in ("identifier", "attribute"):
            bases.append(_text(child))
        elif child.type == "subscript":
            # Generic[T] -> Generic
            value_node = child.child_by_field_name("value")
            if value_node is not None:
                bases.append(_text(value_node))
        elif child.type == "call":
            func_node = child.child_by_field_name("function")
            if func_node is not None:
                bases.append(_text(func_node))

    return tuple(base for base in bases if base)


def _iter_scope_nodes(node: Node) -> Iterator[Node]:
    """Yield descendants of a function body without entering nested scopes.

    Walks with an explicit stack; expression trees can be deeper than the
    interpreter's recursion limit.
    """
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        if current.type in _NESTED_SCOPE_TYPES:
            continue
        yield current
        stack.extend(reversed(current.children))


def _stored_parameters(
    function: Node, owner: str, params: tuple[str, ...]
) -> list[StateAssignment]:
    """Find ``self.<field> = <param>`` assignments inside an initializer."""
    if not params:
        return []
    receiver, candidates = params[0], set(params[1:])
    body = function.child_by_field_name("body")
    if body is None or not candidates:
        return []

    stored: list[StateAssignment] = []
    for node in _iter_scope_nodes(body):
        if node.type != "assignment":
            continue
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None or left.type != "attribute":
            continue
        if _text(left.child_by_field_name("object")) != receiver:
            continue

        # session or default_session -> session
        value = right
        if value.type == "boolean_operator":
            value = value.child_by_field_name("left") or value
        if value.type != "identifier" or _text(value) not in candidates:
            continue

        stored.append(
            StateAssignment(
                owner=owner,
                field=_text(left.child_by_field_name("attribute")),
                parameter=_text(value),
                line=_line(node),
            )
        )
    return stored


class _Collector:
    def __init__(self) -> None:
        self.signatures: list[Signature] = []
        self.types: list[TypeDecl] = []
        self.state_assignments: list[StateAssignment] = []

    def visit(self, root: Node) -> None:
        stack: list[tuple[Node, str | None]] = [(root, None)]
        while stack:
            node, owner = stack.pop()
            if node.type == "class_definition":
                name = self._add_class(node)
                body = node.child_by_field_name("body")
                if name and body is not None:
                    stack.extend((child, name) for child in reversed(body.children))
            elif node.type == "function_definition":
                self._add_function(node, owner)
            else:
                stack.extend((child, owner) for child in reversed(node.children))

    def _add_class(self, node: Node) -> str:
        name = _text(node.child_by_field_name("name"))
        if name:
            self.types.append(
                TypeDecl(name=name, line=_line(node), bases=_extract_base_classes(node))
            )
        return name

    def _add_function(self, node: Node, owner: str | None) -> None:
        # Function bodies are not traversed; nested helpers are not signatures.
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        params = _parameter_names(node.child_by_field_name("parameters"))
        self.signatures.append(
            Signature(
                name=name,
                line=_line(node),
                params=params,
                owner=owner,
                public=not name.startswith("_"),
            )
        )
        if owner is not None and name == "__init__":
            self.state_assignments.extend(_stored_parameters(node, owner, params))


def extract_declarations(
    source: str,
) -> tuple[list[Signature], list[TypeDecl], list[StateAssignment]]:
    """Extract function signatures, class declarations and stored parameters."""
    tree = _get_parser().parse(source.encode("utf8"))
    collector = _Collector()
    collector.visit(tree.root_node)
    return collector.signatures, collector.types, collector.state_assignments


class PythonExtractor:
    """Structural extractor for ``.py`` files.

    Imports come from the stdlib AST, which also rejects files that do not
    parse; declarations come from Tree-sitter.
    """

    language = "python"

    def extract(self, source: str, relative_path: str) -> Structure:
        imports = extract_imports(source, relative_path)
        signatures, types, state_assignments = extract_declarations(source)
        return Structure(
            imports=tuple(imports),
            signatures=tuple(signatures),
            types=tuple(types),
            state_assignments=tuple(state_assignments),
        )


__all__ = ["PythonExtractor", "extract_declarations"]
