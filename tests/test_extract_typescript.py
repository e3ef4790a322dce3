from __future__ import annotations

import pytest

from errors import ExtractionError
from parse import TypeScriptExtractor, extractor_for

_REPOSITORY_TS = """\
import { Pool } from "pg";
import * as models from "../models";
import type { Product } from "@/types/product";
export { formatPrice } from "./format";

export class ProductRepository extends BaseRepository<Product> implements Repo {
  private cache = new Map();

  constructor(private readonly connection: Pool, label: string) {
    super();
    this.label = label;
  }

  async findAll(session: Session): Promise<Product[]> {
    return [];
  }

  private reset(): void {}

  _internal(): void {}
}

export function listProducts(session: Session, limit = 10) {
  return [];
}

export const removeProduct = async ({ id }: { id: number }, session: Session) => {};
"""

_TABLE_TSX = """\
"use client";

import useSWR from "swr";
import { useProductContext } from "@/contexts/ProductContext";

export function ProductTable() {
  const { data } = useSWR("/api/product");
  return <table>{data}</table>;
}
"""


def test_typescript_imports_and_reexports() -> None:
    structure = TypeScriptExtractor().extract(_REPOSITORY_TS, "repo.ts")

    imports = [(r.specifier, r.line, r.names, r.style) for r in structure.imports]
    assert imports == [
        ("pg", 1, ("Pool",), "path"),
        ("../models", 2, ("models",), "path"),
        ("@/types/product", 3, ("Product",), "path"),
        ("./format", 4, (), "path"),
    ]


def test_typescript_classes_signatures_and_constructor_state() -> None:
    structure = TypeScriptExtractor().extract(_REPOSITORY_TS, "repo.ts")

    assert [(t.name, t.bases) for t in structure.types] == [
        ("ProductRepository", ("BaseRepository", "Repo"))
    ]
    assert [(s.qualified_name, s.params, s.public) for s in structure.signatures] == [
        ("ProductRepository.findAll", ("session",), True),
        ("ProductRepository.reset", (), False),
        ("ProductRepository._internal", (), False),
        ("listProducts", ("session", "limit"), True),
        ("removeProduct", ("id", "session"), True),
    ]
    assert [(a.field, a.parameter) for a in structure.state_assignments] == [
        ("connection", "connection"),
        ("label", "label"),
    ]


def test_tsx_files_use_tsx_grammar() -> None:
    path = "frontend/src/components/product/ProductTable.tsx"
    extractor = extractor_for(path)
    assert isinstance(extractor, TypeScriptExtractor)

    structure = extractor.extract(_TABLE_TSX, path)

    assert [ref.specifier for ref in structure.imports] == [
        "swr",
        "@/contexts/ProductContext",
    ]
    assert [s.name for s in structure.signatures] == ["ProductTable"]


def test_typescript_syntax_error_raises_extraction_error() -> None:
    with pytest.raises(ExtractionError, match="broken.ts"):
        TypeScriptExtractor().extract("export function (\n", "broken.ts")
