from __future__ import annotations

import pytest

from errors import ConfigError
from parse.facts import ImportRef
from rules.config import CatalogConfig, LayerDef, StackDef
from rules.layers import (
    LayerGraph,
    build_allowed_deps,
    classify_layer,
    is_violation,
    layer_import_patterns,
)


def _catalog(
    *,
    strict_adjacency: bool = False,
    unclassified: str = "allow",
    edges: list[dict[str, object]] | None = None,
) -> CatalogConfig:
    return CatalogConfig.model_validate(
        {
            "settings": {"unclassified": unclassified},
            "stacks": [
                {
                    "name": "backend",
                    "import_root": "backend",
                    "strict_adjacency": strict_adjacency,
                },
                {"name": "frontend", "import_root": "frontend/src"},
            ],
            "layers": [
                {
                    "name": "schema",
                    "stack": "backend",
                    "position": 0,
                    "glob": "backend/app/schemas/{entity}_schema.py",
                    "modules": ["app/models/*"],
                },
                {
                    "name": "router",
                    "stack": "backend",
                    "position": 1,
                    "glob": "backend/app/routers/{entity}_router.py",
                },
                {
                    "name": "service",
                    "stack": "backend",
                    "position": 2,
                    "glob": "backend/app/services/{entity}_service.py",
                },
                {
                    "name": "repository",
                    "stack": "backend",
                    "position": 3,
                    "glob": "backend/app/repositories/{entity}_repository.py",
                },
                {
                    "name": "page",
                    "stack": "frontend",
                    "position": 1,
                    "glob": "frontend/src/app/{entity}/page.tsx",
                },
                {
                    "name": "table",
                    "stack": "frontend",
                    "position": 2,
                    "glob": "frontend/src/components/{entity}/{Entity}Table.tsx",
                },
                {
                    "name": "context",
                    "stack": "frontend",
                    "position": 2,
                    "glob": "frontend/src/contexts/{Entity}Context.tsx",
                },
            ],
            "edges": edges or [],
        }
    )


def test_classify_layer_first_match_wins_with_overlapping_patterns() -> None:
    layers = [("A", ("app/*",)), ("B", ("app/services/*",))]

    assert classify_layer(["app/services/x"], layers) == "A"


def test_classify_layer_returns_none_when_no_pattern_matches() -> None:
    layers = [("service", ("app/services/*_service",))]

    assert classify_layer(["fastapi"], layers) is None


def test_layer_import_patterns_strip_root_suffix_and_placeholders() -> None:
    layer = LayerDef(
        name="table",
        stack="frontend",
        position=2,
        glob="frontend/src/components/{entity}/{Entity}Table.tsx",
    )

    assert layer_import_patterns(layer, "frontend/src") == ("components/*/*Table",)


def test_build_allowed_deps_downstream_positions_only() -> None:
    stacks = [StackDef(name="backend")]
    layers = [
        LayerDef(name="schema", stack="backend", position=0, glob="s/{entity}.py"),
        LayerDef(name="router", stack="backend", position=1, glob="r/{entity}.py"),
        LayerDef(name="service", stack="backend", position=2, glob="v/{entity}.py"),
        LayerDef(name="repo", stack="backend", position=3, glob="p/{entity}.py"),
    ]

    assert build_allowed_deps(stacks, layers) == {
        "schema": set(),
        "router": {"service", "repo"},
        "service": {"repo"},
        "repo": set(),
    }


def test_build_allowed_deps_strict_adjacency_only_next_position() -> None:
    stacks = [StackDef(name="backend", strict_adjacency=True)]
    layers = [
        LayerDef(name="router", stack="backend", position=1, glob="r/{entity}.py"),
        LayerDef(name="service", stack="backend", position=2, glob="v/{entity}.py"),
        LayerDef(name="repo", stack="backend", position=3, glob="p/{entity}.py"),
    ]

    allowed = build_allowed_deps(stacks, layers)

    assert allowed["router"] == {"service"}
    assert allowed["service"] == {"repo"}


def test_is_violation_unclassified_modes() -> None:
    allowed_deps = {"service": {"repository"}}

    assert is_violation("service", None, allowed_deps, "allow") is False
    assert is_violation("service", None, allowed_deps, "ignore") is False
    assert is_violation("service", None, allowed_deps, "deny") is True


def test_is_violation_same_layer_and_shared_layers_allowed() -> None:
    allowed_deps: dict[str, set[str]] = {"repository": set()}

    assert is_violation("repository", "repository", allowed_deps, "allow") is False
    assert (
        is_violation(
            "repository", "schema", allowed_deps, "allow", frozenset({"schema"})
        )
        is False
    )
    assert is_violation("repository", "service", allowed_deps, "allow") is True


def test_same_position_layers_cannot_import_each_other_without_edge() -> None:
    graph = LayerGraph(_catalog())

    assert not graph.allows("table", "context")
    assert not graph.allows("context", "table")


def test_explicit_edge_allows_same_position_import() -> None:
    graph = LayerGraph(_catalog(edges=[{"from": "table", "to": ["context"]}]))

    assert graph.allows("table", "context")
    assert not graph.allows("context", "table")


def test_cyclic_edges_raise_config_error() -> None:
    with pytest.raises(ConfigError, match="acyclic"):
        LayerGraph(_catalog(edges=[{"from": "repository", "to": ["router"]}]))


def test_python_absolute_import_classified_relative_to_import_root() -> None:
    graph = LayerGraph(_catalog())
    ref = ImportRef(
        specifier="app.services.product_service", line=4, names=("get_product",)
    )

    assert (
        graph.classify_import(
            ref, "backend/app/repositories/product_repository.py", "backend"
        )
        == "service"
    )


def test_python_from_package_import_classifies_imported_module() -> None:
    graph = LayerGraph(_catalog())
    ref = ImportRef(specifier="app.services", line=1, names=("product_service",))

    assert graph.classify_import(ref, "backend/app/routers/x_router.py", "backend") == (
        "service"
    )


def test_python_relative_import_resolved_against_source_module() -> None:
    graph = LayerGraph(_catalog())
    ref = ImportRef(
        specifier="services.product_service", line=1, names=("get_product",), level=2
    )

    assert (
        graph.classify_import(
            ref, "backend/app/repositories/product_repository.py", "backend"
        )
        == "service"
    )


def test_typescript_alias_and_relative_imports_classified() -> None:
    graph = LayerGraph(_catalog())
    alias = ImportRef(specifier="@/contexts/ProductContext", line=2, style="path")
    relative = ImportRef(
        specifier="../../components/product/ProductTable", line=3, style="path"
    )

    page = "frontend/src/app/product/page.tsx"
    assert graph.classify_import(alias, page, "frontend") == "context"
    assert graph.classify_import(relative, page, "frontend") == "table"


def test_check_imports_reports_reverse_dependency() -> None:
    graph = LayerGraph(_catalog())
    imports = [
        ImportRef(specifier="sqlalchemy.orm", line=1, names=("Session",)),
        ImportRef(specifier="app.models.product", line=3, names=("Product",)),
        ImportRef(specifier="app.services.product_service", line=4, names=("x",)),
    ]

    violations = graph.check_imports(
        "repository", imports, "backend/app/repositories/product_repository.py"
    )

    assert [v.ref.line for v in violations] == [4]
    assert violations[0].to_layer == "service"
    assert "app.services.product_service" in violations[0].describe("repository")


def test_check_imports_deny_unclassified() -> None:
    graph = LayerGraph(_catalog(unclassified="deny"))
    imports = [ImportRef(specifier="requests", line=1)]

    violations = graph.check_imports(
        "service", imports, "backend/app/services/product_service.py"
    )

    assert len(violations) == 1
    assert violations[0].to_layer is None
    assert "unclassified" in violations[0].describe("service")


def test_strict_adjacency_flags_skip_layer_import() -> None:
    graph = LayerGraph(_catalog(strict_adjacency=True))
    imports = [ImportRef(specifier="app.repositories.product_repository", line=2)]

    violations = graph.check_imports(
        "router", imports, "backend/app/routers/product_router.py"
    )

    assert [v.to_layer for v in violations] == ["repository"]


def test_import_classified_only_within_importing_stack() -> None:
    graph = LayerGraph(_catalog())
    ref = ImportRef(specifier="app.product.page", line=1, names=("render",))
    router = "backend/app/routers/product_router.py"

    assert graph.classify_import(ref, router, "backend") is None
    assert graph.classify_import(ref, router, "backend", "router") is None


def test_explicit_edge_makes_other_stack_layer_classifiable() -> None:
    graph = LayerGraph(_catalog(edges=[{"from": "router", "to": ["page"]}]))
    ref = ImportRef(specifier="app.product.page", line=1, names=("render",))
    router = "backend/app/routers/product_router.py"

    assert graph.classify_import(ref, router, "backend", "router") == "page"
    assert graph.classify_import(ref, router, "backend", "service") is None
    assert graph.check_imports("router", [ref], router) == []
