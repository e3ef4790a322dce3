"""Rule catalog, predicate vocabulary and layer graph."""

from rules.catalog import Rule, RuleCatalog
from rules.config import (
    CatalogConfig,
    ConfigError,
    LayerDef,
    StackDef,
    load_config,
)
from rules.layers import LayerGraph, build_allowed_deps, classify_layer, is_violation
from rules.predicates import PREDICATE_KINDS, Predicate, build_predicate

__all__ = [
    "PREDICATE_KINDS",
    "CatalogConfig",
    "ConfigError",
    "LayerDef",
    "LayerGraph",
    "Predicate",
    "Rule",
    "RuleCatalog",
    "StackDef",
    "build_allowed_deps",
    "build_predicate",
    "classify_layer",
    "is_violation",
    "load_config",
]
