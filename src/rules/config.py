from __future__ import annotations

import re
import tomllib
from importlib import resources
from pathlib import Path
from typing import Any, Literal, Self

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from contract.models import Severity
from errors import ConfigError

CATALOG_FILENAME = "compliance.toml"
DEFAULT_CATALOG_RESOURCE = "default_catalog.toml"

ENTITY_PLACEHOLDERS = ("{entity}", "{Entity}")

UnclassifiedBehavior = Literal["allow", "deny", "ignore"]

_STRICT = ConfigDict(extra="forbid", frozen=True)
_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]*$")


def _check_relative(path: str, what: str) -> str:
    if path.startswith(("/", "~")) or re.match(r"^[A-Za-z]:[\\/]", path):
        msg = f"{what} must be relative to the root: {path!r}"
        raise ValueError(msg)
    if ".." in path.replace("\\", "/").split("/"):
        msg = f"{what} must not contain '..': {path!r}"
        raise ValueError(msg)
    return path


class Settings(BaseModel):
    """Engine settings shared by every entity in a run."""

    model_config = _STRICT

    workers: int = Field(default=8, ge=1, description="Worker pool size")
    read_timeout: float = Field(
        default=10.0, gt=0, description="Per-file read timeout in seconds"
    )
    unclassified: UnclassifiedBehavior = Field(
        default="allow",
        description="Behavior for imports that resolve to no layer",
    )
    nested_gitignore: bool = Field(
        default=False,
        description="Compose nested .gitignore files during entity discovery",
    )
    path_aliases: dict[str, str] = Field(
        default_factory=lambda: {"@/": ""},
        description="Import prefix -> path under the stack import root",
    )
    exclude_entities: list[str] = Field(
        default_factory=lambda: ["index"],
        description="Names never reported as entities by discovery",
    )


class StackDef(BaseModel):
    """An ordered chain of layers that share an import root."""

    model_config = _STRICT

    name: str = Field(description="Stack name (e.g., 'backend')")
    import_root: str = Field(
        default="",
        description="Directory that import specifiers are relative to",
    )
    strict_adjacency: bool = Field(
        default=False,
        description="Only the next position downstream may be imported",
    )

    @field_validator("import_root")
    @classmethod
    def validate_import_root(cls, v: str) -> str:
        return _check_relative(v, "import_root").strip("/")


class LayerDef(BaseModel):
    """Definition of a single architectural layer."""

    model_config = _STRICT

    name: str = Field(description="Layer name (e.g., 'service')")
    stack: str = Field(description="Stack this layer belongs to")
    position: int = Field(
        ge=0,
        description="Position in the stack chain; 0 marks a shared leaf layer",
    )
    glob: str = Field(
        description="Path pattern with an {entity} or {Entity} placeholder"
    )
    modules: list[str] = Field(
        default_factory=list,
        description="Extra fnmatch patterns classifying import targets",
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _NAME_RE.match(v):
            msg = f"invalid layer name {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("glob")
    @classmethod
    def validate_glob(cls, v: str) -> str:
        _check_relative(v, "glob")
        if not any(placeholder in v for placeholder in ENTITY_PLACEHOLDERS):
            msg = f"glob must contain {{entity}} or {{Entity}}: {v!r}"
            raise ValueError(msg)
        return v

    @property
    def shared(self) -> bool:
        return self.position == 0


class EdgeDef(BaseModel):
    """Extra allowed dependencies from one layer to others."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    from_layer: str = Field(alias="from", description="Source layer name")
    to: list[str] = Field(
        default_factory=list,
        description="List of layer names this layer may depend on",
    )


class RuleDef(BaseModel):
    """One catalog record; the predicate is validated by ``rules.catalog``."""

    model_config = _STRICT

    id: str = Field(min_length=1)
    layer: str
    severity: Severity
    predicate_kind: str = Field(
        validation_alias=AliasChoices("predicate_kind", "predicateKind")
    )
    predicate_args: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("predicate_args", "predicateArgs"),
    )
    description: str

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class CatalogConfig(BaseModel):
    """A complete rule catalog: settings, stacks, layers, edges and rules."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    settings: Settings = Field(default_factory=Settings)
    stacks: list[StackDef] = Field(min_length=1)
    layers: list[LayerDef] = Field(min_length=1)
    edges: list[EdgeDef] = Field(default_factory=list)
    rules: list[RuleDef] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> Self:
        stack_names = _unique([stack.name for stack in self.stacks], "stack")
        layer_names = _unique([layer.name for layer in self.layers], "layer")
        _unique([rule.id for rule in self.rules], "rule id")

        for layer in self.layers:
            if layer.stack not in stack_names:
                msg = f"layer {layer.name!r} references unknown stack {layer.stack!r}"
                raise ValueError(msg)

        for edge in self.edges:
            for name in (edge.from_layer, *edge.to):
                if name not in layer_names:
                    msg = f"edge references unknown layer {name!r}"
                    raise ValueError(msg)

        for rule in self.rules:
            if rule.layer not in layer_names:
                msg = f"rule {rule.id!r} targets unknown layer {rule.layer!r}"
                raise ValueError(msg)

        return self


def _unique(names: list[str], what: str) -> set[str]:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            msg = f"duplicate {what} {name!r}"
            raise ValueError(msg)
        seen.add(name)
    return seen


def parse_catalog(data: dict[str, Any], source: str) -> CatalogConfig:
    try:
        return CatalogConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid catalog in {source}: {e}"
        raise ConfigError(msg) from e


def load_catalog_file(path: Path) -> CatalogConfig:
    """Load and validate a catalog file.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or fails
            validation.
    """
    if not path.is_file():
        msg = f"Catalog file not found: {path}"
        raise ConfigError(msg)

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {path}: {e}"
        raise ConfigError(msg) from e
    except OSError as e:
        msg = f"Cannot read catalog {path}: {e}"
        raise ConfigError(msg) from e

    return parse_catalog(data, str(path))


def load_default_catalog() -> CatalogConfig:
    """Load the built-in fullstack catalog shipped with the package."""
    resource = resources.files("rules").joinpath(DEFAULT_CATALOG_RESOURCE)
    data = tomllib.loads(resource.read_text(encoding="utf-8"))
    return parse_catalog(data, f"<builtin {DEFAULT_CATALOG_RESOURCE}>")


def load_config(root: Path, catalog_path: Path | None = None) -> CatalogConfig:
    """Load the catalog for a run.

    An explicit ``catalog_path`` wins; otherwise ``compliance.toml`` at the
    root is used if present, falling back to the built-in catalog.
    """
    if catalog_path is not None:
        return load_catalog_file(catalog_path)

    config_path = Path(root) / CATALOG_FILENAME
    if config_path.is_file():
        return load_catalog_file(config_path)

    return load_default_catalog()


__all__ = [
    "CATALOG_FILENAME",
    "ENTITY_PLACEHOLDERS",
    "CatalogConfig",
    "ConfigError",
    "EdgeDef",
    "LayerDef",
    "RuleDef",
    "Settings",
    "StackDef",
    "UnclassifiedBehavior",
    "load_catalog_file",
    "load_config",
    "load_default_catalog",
    "parse_catalog",
]
