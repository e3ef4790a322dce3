"""Predicate vocabulary for compliance rules.

The set of predicate kinds is closed: a catalog naming any other kind is a
configuration error. Predicates are immutable data; evaluation lives in
``check.matcher``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Annotated, Any, ClassVar, Literal, Self, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from parse.tokens import TokenPattern


def _check_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        msg = f"invalid regular expression {value!r}: {exc}"
        raise ValueError(msg) from exc
    return value


class _PredicateBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    structural: ClassVar[bool] = False

    def requires_structure(self) -> bool:
        """True when the predicate needs extracted declarations or imports."""
        return self.structural

    def token_patterns(self) -> tuple[TokenPattern, ...]:
        return ()


class RequiresToken(_PredicateBase):
    """Violated when the file (or every public signature) lacks ``token``."""

    kind: Literal["RequiresToken"] = "RequiresToken"
    token: str = Field(min_length=1)
    regex: bool = False
    scope: Literal["file", "signatures"] = "file"

    @model_validator(mode="after")
    def _validate_regex(self) -> Self:
        if self.regex:
            _check_regex(self.token)
        return self

    @property
    def pattern(self) -> TokenPattern:
        return TokenPattern(self.token, self.regex)

    def requires_structure(self) -> bool:
        return self.scope == "signatures"

    def token_patterns(self) -> tuple[TokenPattern, ...]:
        if self.scope == "signatures":
            return ()
        return (self.pattern,)

    def matches_parameter(self, name: str) -> bool:
        """Parameter names match case-insensitively (``db_session``, ``dbSession``)."""
        if self.regex:
            return re.search(self.token, name) is not None
        return self.token.casefold() in name.casefold()


class ForbidsToken(_PredicateBase):
    """Violated when the file contains ``token``."""

    kind: Literal["ForbidsToken"] = "ForbidsToken"
    token: str = Field(min_length=1)
    regex: bool = False

    @model_validator(mode="after")
    def _validate_regex(self) -> Self:
        if self.regex:
            _check_regex(self.token)
        return self

    @property
    def pattern(self) -> TokenPattern:
        return TokenPattern(self.token, self.regex)

    def token_patterns(self) -> tuple[TokenPattern, ...]:
        return (self.pattern,)


class RequiresInheritance(_PredicateBase):
    """Violated when no declared type derives from ``base_name``.

    With ``class_pattern`` every type whose name matches the pattern must
    derive from ``base_name`` instead.
    """

    kind: Literal["RequiresInheritance"] = "RequiresInheritance"
    base_name: str = Field(min_length=1)
    class_pattern: str | None = None

    structural: ClassVar[bool] = True


class ImportDirectionAllowed(_PredicateBase):
    """Violated when an import targets a layer that is not downstream."""

    kind: Literal["ImportDirectionAllowed"] = "ImportDirectionAllowed"

    structural: ClassVar[bool] = True


class StatelessConstructor(_PredicateBase):
    """Violated when an initializer stores a session-like parameter."""

    kind: Literal["StatelessConstructor"] = "StatelessConstructor"
    names: tuple[str, ...] = ("session", "connection")

    structural: ClassVar[bool] = True

    @field_validator("names")
    @classmethod
    def _validate_names(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v or any(not name for name in v):
            msg = "names must be a non-empty list of non-empty strings"
            raise ValueError(msg)
        return v

    def matches_parameter(self, name: str) -> bool:
        folded = name.casefold()
        return any(candidate.casefold() in folded for candidate in self.names)


class MutuallyExclusiveTokens(_PredicateBase):
    """Violated when both tokens occur in the same file."""

    kind: Literal["MutuallyExclusiveTokens"] = "MutuallyExclusiveTokens"
    token_a: str = Field(min_length=1)
    token_b: str = Field(min_length=1)
    regex: bool = False

    @model_validator(mode="after")
    def _validate_regex(self) -> Self:
        if self.regex:
            _check_regex(self.token_a)
            _check_regex(self.token_b)
        return self

    @property
    def pattern_a(self) -> TokenPattern:
        return TokenPattern(self.token_a, self.regex)

    @property
    def pattern_b(self) -> TokenPattern:
        return TokenPattern(self.token_b, self.regex)

    def token_patterns(self) -> tuple[TokenPattern, ...]:
        return (self.pattern_a, self.pattern_b)


Predicate = Annotated[
    Union[
        RequiresToken,
        ForbidsToken,
        RequiresInheritance,
        ImportDirectionAllowed,
        StatelessConstructor,
        MutuallyExclusiveTokens,
    ],
    Field(discriminator="kind"),
]

_PREDICATE_MODELS: tuple[type[_PredicateBase], ...] = (
    RequiresToken,
    ForbidsToken,
    RequiresInheritance,
    ImportDirectionAllowed,
    StatelessConstructor,
    MutuallyExclusiveTokens,
)

PREDICATE_KINDS: tuple[str, ...] = tuple(
    model.model_fields["kind"].default for model in _PREDICATE_MODELS
)

_PREDICATE_ADAPTER: TypeAdapter[Predicate] = TypeAdapter(Predicate)


def build_predicate(kind: str, args: Mapping[str, Any] | None = None) -> Predicate:
    """Validate ``args`` against the predicate named by ``kind``.

    Raises:
        ValueError: Unknown kind or a ``kind`` key inside ``args``.
        pydantic.ValidationError: Missing, unknown or mistyped arguments.
    """
    if kind not in PREDICATE_KINDS:
        msg = (
            f"unknown predicate kind {kind!r}; "
            f"expected one of: {', '.join(PREDICATE_KINDS)}"
        )
        raise ValueError(msg)
    args = dict(args or {})
    if "kind" in args:
        msg = "predicate_args must not contain 'kind'"
        raise ValueError(msg)
    return _PREDICATE_ADAPTER.validate_python({**args, "kind": kind})


__all__ = [
    "PREDICATE_KINDS",
    "ForbidsToken",
    "ImportDirectionAllowed",
    "MutuallyExclusiveTokens",
    "Predicate",
    "RequiresInheritance",
    "RequiresToken",
    "StatelessConstructor",
    "build_predicate",
]
