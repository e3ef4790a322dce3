from __future__ import annotations

import pytest

from errors import ExtractionError
from parse import TokenPattern, build_file_facts, extractor_for
from parse import ast_imports
from parse.ast_imports import extract_imports
from parse.treesitter_python import PythonExtractor, extract_declarations

_SERVICE = '''\
from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..repositories import product_repository
import app.core.database as database, logging


class ProductService(BaseService):
    def __init__(self, session: Session, *, repository=None) -> None:
        self.session = session
        self.repository = repository or product_repository

    def get(self, session: Session, product_id: int):
        return product_repository.get(session, product_id)

    def _helper(self):
        def inner(x):
            return x
        return inner


@cached
def list_products(db_session, *args, limit: int = 10, **kwargs):
    return []
'''


def test_extract_imports_one_ref_per_alias_and_from_import() -> None:
    imports = extract_imports(_SERVICE, "service.py")

    assert [(ref.specifier, ref.line, ref.level, ref.names) for ref in imports] == [
        ("fastapi", 1, 0, ("HTTPException",)),
        ("sqlalchemy.orm", 2, 0, ("Session",)),
        ("repositories", 4, 2, ("product_repository",)),
        ("app.core.database", 5, 0, ()),
        ("logging", 5, 0, ()),
    ]
    assert imports[2].display() == "..repositories"


def test_extract_imports_rejects_invalid_syntax() -> None:
    with pytest.raises(ExtractionError, match="broken.py:1"):
        extract_imports("def broken(:\n    pass\n", "broken.py")


def test_extract_declarations_signatures_types_and_state() -> None:
    signatures, types, state = extract_declarations(_SERVICE)

    assert [(s.qualified_name, s.params, s.public) for s in signatures] == [
        ("ProductService.__init__", ("self", "session", "repository"), False),
        ("ProductService.get", ("self", "session", "product_id"), True),
        ("ProductService._helper", ("self",), False),
        ("list_products", ("db_session", "args", "limit", "kwargs"), True),
    ]
    assert [(t.name, t.bases) for t in types] == [("ProductService", ("BaseService",))]
    assert [(a.owner, a.field, a.parameter) for a in state] == [
        ("ProductService", "session", "session"),
        ("ProductService", "repository", "repository"),
    ]


def test_extract_declarations_generic_and_keyword_bases() -> None:
    _, types, _ = extract_declarations(
        "class Repo(Generic[T], metaclass=ABCMeta):\n    pass\n"
        "class Model(pydantic.BaseModel):\n    pass\n"
    )

    assert [(t.name, t.bases) for t in types] == [
        ("Repo", ("Generic",)),
        ("Model", ("pydantic.BaseModel",)),
    ]


def test_python_extractor_selected_by_suffix() -> None:
    extractor = extractor_for("backend/app/services/x_service.py")
    assert isinstance(extractor, PythonExtractor)
    assert extractor_for("README.md") is None


def test_build_file_facts_keeps_tokens_when_structure_fails() -> None:
    pattern = TokenPattern("HTTPException")
    source = "raise HTTPException(404\n"

    facts = build_file_facts(source, "x_service.py", [pattern], PythonExtractor())

    assert facts.structure_error is not None
    assert "x_service.py" in facts.structure_error
    assert facts.lines_for(pattern) == (1,)
    assert facts.imports == ()


def test_build_file_facts_without_extractor_records_reason() -> None:
    facts = build_file_facts("body { }\n", "styles.css", [], None)

    assert facts.structure_error == "no structural extractor for '.css' files"
    assert facts.line_count == 1


def test_extract_declarations_walks_deep_expressions() -> None:
    total = " + ".join(["1"] * 5000)
    source = f"TOTAL = {total}\n\n\ndef get_product(session, product_id):\n    pass\n"

    signatures, types, _ = extract_declarations(source)

    assert [(s.name, s.line) for s in signatures] == [("get_product", 4)]
    assert types == []


def test_extract_imports_maps_recursion_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def _too_deep(source: str, filename: str) -> None:
        raise RecursionError("maximum recursion depth exceeded during ast construction")

    monkeypatch.setattr(ast_imports.ast, "parse", _too_deep)

    with pytest.raises(ExtractionError, match="deep_service.py: RecursionError"):
        extract_imports("TOTAL = 1\n", "deep_service.py")
