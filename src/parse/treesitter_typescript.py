"""Tree-sitter based extraction for TypeScript and JavaScript sources."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import tree_sitter_typescript as tstypescript
from tree_sitter import Language, Node, Parser

from errors import ExtractionError
from parse.facts import (
    ImportRef,
    Signature,
    StateAssignment,
    Structure,
    TypeDecl,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

_LOCAL = threading.local()

_TSX_SUFFIXES = (".tsx", ".jsx", ".js", ".mjs", ".cjs")

_CLASS_TYPES = frozenset({"class_declaration", "abstract_class_declaration", "class"})
_FUNCTION_TYPES = frozenset(
    {"function_declaration", "generator_function_declaration"}
)
_FUNCTION_VALUE_TYPES = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)
_PARAMETER_TYPES = frozenset({"required_parameter", "optional_parameter"})
_NESTED_SCOPE_TYPES = frozenset(
    {
        "arrow_function",
        "function_expression",
        "function",
        "function_declaration",
        "class",
        "class_declaration",
    }
)
_PRIVATE_MODIFIERS = frozenset({"private", "protected"})


def _get_parser(tsx: bool) -> Parser:
    """Return this thread's parser for the TypeScript or TSX grammar."""
    attr = "tsx_parser" if tsx else "ts_parser"
    parser = getattr(_LOCAL, attr, None)
    if parser is None:
        raw = tstypescript.language_tsx() if tsx else tstypescript.language_typescript()
        parser = Parser(Language(raw))
        setattr(_LOCAL, attr, parser)
    return parser


def _text(node: Node | None) -> str:
    if node is None or not node.text:
        return ""
    return node.text.decode("utf-8")


def _line(node: Node) -> int:
    return node.start_point[0] + 1


def _first_error_line(root: Node) -> int | None:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return _line(node)
        stack.extend(
            child
            for child in reversed(node.children)
            if child.has_error or child.is_missing
        )
    return None



def _string_fragment(node: Node | None) -> str | None:
    """Return the unquoted value of a string literal node."""
    if node is None:
        return None
    for sub in node.children:
        if sub.type == "string_fragment":
            return _text(sub)
    return None


def _import_source(node: Node) -> str | None:
    source = node.child_by_field_name("source")
    if source is not None:
        return _string_fragment(source)
    for child in node.children:
        if child.type == "string":
            return _string_fragment(child)
    return None


def _imported_names(node: Node) -> tuple[str, ...]:
    names: list[str] = []
    for child in node.children:
        if child.type != "import_clause":
            continue
        for sub in child.named_children:
            if sub.type == "identifier":
                names.append(_text(sub))
            elif sub.type == "named_imports":
                for item in sub.named_children:
                    if item.type == "import_specifier":
                        names.append(_text(item.child_by_field_name("name")))
            elif sub.type == "namespace_import":
                names.extend(
                    _text(ident)
                    for ident in sub.named_children
                    if ident.type == "identifier"
                )
    return tuple(name for name in names if name)


def _pattern_names(node: Node | None) -> list[str]:
    """Collect bound names from a parameter pattern (destructuring included)."""
    if node is None:
        return []
    if node.type in ("identifier", "shorthand_property_identifier_pattern"):
        return [_text(node)]
    if node.type == "pair_pattern":
        return _pattern_names(node.child_by_field_name("value"))
    if node.type in ("object_assignment_pattern", "assignment_pattern"):
        return _pattern_names(node.child_by_field_name("left"))
    if node.type in ("object_pattern", "array_pattern", "rest_pattern"):
        names: list[str] = []
        for child in node.named_children:
            names.extend(_pattern_names(child))
        return names
    return []


def _is_parameter_property(parameter: Node) -> bool:
    """``constructor(private readonly session: Session)`` stores its argument."""
    return any(
        child.type in ("accessibility_modifier", "readonly")
        for child in parameter.children
    )


def _parameters(function: Node) -> list[Node]:
    params = function.child_by_field_name("parameters")
    if params is not None:
        return [
            child for child in params.named_children if child.type in _PARAMETER_TYPES
        ]
    single = function.child_by_field_name("parameter")
    return [single] if single is not None else []


def _parameter_names(function: Node) -> tuple[str, ...]:
    names: list[str] = []
    for param in _parameters(function):
        if param.type == "identifier":
            names.append(_text(param))
        else:
            names.extend(_pattern_names(param.child_by_field_name("pattern")))
    return tuple(name for name in names if name)


def _heritage_names(node: Node) -> tuple[str, ...]:
    bases: list[str] = []
    for child in node.children:
        if child.type != "class_heritage":
            continue
        for clause in child.named_children:
            for base in clause.named_children:
                if base.type in ("identifier", "type_identifier", "member_expression"):
                    bases.append(_text(base))
                elif base.type == "generic_type":
                    bases.append(_text(base.child_by_field_name("name")))
                elif base.type == "call_expression":
                    bases.append(_text(base.child_by_field_name("function")))
    return tuple(base for base in bases if base)


def _iter_scope_nodes(node: Node) -> Iterator[Node]:
    stack = list(reversed(node.children))
    while stack:
        current = stack.pop()
        if current.type in _NESTED_SCOPE_TYPES:
            continue
        yield current
        stack.extend(reversed(current.children))



def _constructor_state(constructor: Node, owner: str) -> list[StateAssignment]:
    stored: list[StateAssignment] = []
    params = _parameters(constructor)
    for param in params:
        if not _is_parameter_property(param):
            continue
        for name in _pattern_names(param.child_by_field_name("pattern")):
            stored.append(
                StateAssignment(
                    owner=owner, field=name, parameter=name, line=_line(param)
                )
            )

    candidates = set(_parameter_names(constructor))
    body = constructor.child_by_field_name("body")
    if body is None or not candidates:
        return stored

    for node in _iter_scope_nodes(body):
        if node.type != "assignment_expression":
            continue
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None or left.type != "member_expression":
            continue
        receiver = left.child_by_field_name("object")
        if receiver is None or receiver.type != "this":
            continue
        if right.type != "identifier" or _text(right) not in candidates:
            continue
        stored.append(
            StateAssignment(
                owner=owner,
                field=_text(left.child_by_field_name("property")),
                parameter=_text(right),
                line=_line(node),
            )
        )
    return stored


class _Collector:
    def __init__(self) -> None:
        self.imports: list[ImportRef] = []
        self.signatures: list[Signature] = []
        self.types: list[TypeDecl] = []
        self.state_assignments: list[StateAssignment] = []

    def visit(self, node: Node) -> None:
        for child in node.children:
            self._visit_statement(child)

    def _visit_statement(self, node: Node) -> None:
        if node.type == "import_statement":
            self._add_import(node)
        elif node.type == "export_statement":
            if _import_source(node) is not None:
                self._add_import(node)
            self.visit(node)
        elif node.type in _CLASS_TYPES:
            self._visit_class(node)
        elif node.type in _FUNCTION_TYPES:
            self._add_signature(node, _text(node.child_by_field_name("name")), None)
        elif node.type in ("lexical_declaration", "variable_declaration"):
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                value = declarator.child_by_field_name("value")
                if value is not None and value.type in _FUNCTION_VALUE_TYPES:
                    name = _text(declarator.child_by_field_name("name"))
                    self._add_signature(value, name, None)

    def _add_import(self, node: Node) -> None:
        source = _import_source(node)
        if not source:
            return
        self.imports.append(
            ImportRef(
                specifier=source,
                line=_line(node),
                names=_imported_names(node),
                style="path",
            )
        )

    def _add_signature(
        self, node: Node, name: str, owner: str | None, *, public: bool = True
    ) -> None:
        if not name:
            return
        self.signatures.append(
            Signature(
                name=name,
                line=_line(node),
                params=_parameter_names(node),
                owner=owner,
                public=public and not name.startswith(("_", "#")),
            )
        )

    def _visit_class(self, node: Node) -> None:
        name = _text(node.child_by_field_name("name"))
        if not name:
            return
        self.types.append(
            TypeDecl(name=name, line=_line(node), bases=_heritage_names(node))
        )

        body = node.child_by_field_name("body")
        if body is None:
            return
        for member in body.named_children:
            if member.type != "method_definition":
                continue
            method_name = _text(member.child_by_field_name("name"))
            modifiers = {
                _text(child)
                for child in member.children
                if child.type == "accessibility_modifier"
            }
            if method_name == "constructor":
                self.state_assignments.extend(_constructor_state(member, name))
                continue
            self._add_signature(
                member, method_name, name, public=not (modifiers & _PRIVATE_MODIFIERS)
            )


class TypeScriptExtractor:
    """Structural extractor for TypeScript, TSX and JavaScript files."""

    language = "typescript"

    def extract(self, source: str, relative_path: str) -> Structure:
        tsx = relative_path.endswith(_TSX_SUFFIXES)
        tree = _get_parser(tsx).parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            line = _first_error_line(root)
            where = f"{relative_path}:{line}" if line else relative_path
            msg = f"cannot parse {where}: syntax error"
            raise ExtractionError(msg)

        collector = _Collector()
        collector.visit(root)
        return Structure(
            imports=tuple(collector.imports),
            signatures=tuple(collector.signatures),
            types=tuple(collector.types),
            state_assignments=tuple(collector.state_assignments),
        )


__all__ = ["TypeScriptExtractor"]
