"""Loaded, validated rule catalog shared read-only by every worker."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from errors import ConfigError
from rules.config import load_config
from rules.layers import LayerGraph
from rules.predicates import build_predicate

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from contract.models import Severity
    from parse.tokens import TokenPattern
    from rules.config import CatalogConfig, LayerDef, Settings
    from rules.predicates import Predicate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Rule:
    id: str
    layer: str
    severity: Severity
    description: str
    predicate: Predicate


def _build_rule(record_id: str, kind: str, args: Mapping[str, object]) -> Predicate:
    try:
        return build_predicate(kind, args)
    except ValidationError as e:
        msg = f"rule {record_id!r}: invalid predicate_args for {kind}: {e}"
        raise ConfigError(msg) from e
    except ValueError as e:
        msg = f"rule {record_id!r}: {e}"
        raise ConfigError(msg) from e


class RuleCatalog:
    """Layers, stacks, layer graph and rules of one catalog.

    Rules are kept per layer in catalog order; report ordering is decided by
    the aggregator, not by this order.
    """

    def __init__(self, config: CatalogConfig) -> None:
        self.config = config
        self.graph = LayerGraph(config)
        self._layers: dict[str, LayerDef] = {
            layer.name: layer for layer in config.layers
        }

        by_layer: dict[str, list[Rule]] = {layer.name: [] for layer in config.layers}
        for record in config.rules:
            predicate = _build_rule(
                record.id, record.predicate_kind, record.predicate_args
            )
            by_layer[record.layer].append(
                Rule(
                    id=record.id,
                    layer=record.layer,
                    severity=record.severity,
                    description=record.description,
                    predicate=predicate,
                )
            )
        self._rules_by_layer = {name: tuple(rules) for name, rules in by_layer.items()}

        logger.debug(
            "Loaded catalog: %d stacks, %d layers, %d rules",
            len(config.stacks),
            len(config.layers),
            len(self.rules),
        )

    @classmethod
    def load(cls, root: Path, catalog_path: Path | None = None) -> RuleCatalog:
        """Load a catalog; every configuration problem raises ConfigError."""
        return cls(load_config(root, catalog_path))

    @property
    def settings(self) -> Settings:
        return self.config.settings

    @property
    def layers(self) -> tuple[LayerDef, ...]:
        return tuple(self.config.layers)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(rule for rules in self._rules_by_layer.values() for rule in rules)

    @property
    def layer_positions(self) -> dict[str, int]:
        return {name: layer.position for name, layer in self._layers.items()}

    def rules_for(self, layer: str) -> tuple[Rule, ...]:
        return self._rules_by_layer.get(layer, ())

    def patterns_for(self, layer: str) -> tuple[TokenPattern, ...]:
        """Token patterns the extractor must scan for in ``layer`` files."""
        found: dict[TokenPattern, None] = {}
        for rule in self.rules_for(layer):
            for pattern in rule.predicate.token_patterns():
                found.setdefault(pattern, None)
        return tuple(found)


__all__ = ["Rule", "RuleCatalog"]
