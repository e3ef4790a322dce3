"""Token patterns searched in raw source text."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


@dataclass(frozen=True)
class TokenPattern:
    """A literal substring or regular expression matched line by line."""

    text: str
    regex: bool = False
    _compiled: re.Pattern[str] | None = field(
        default=None, init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        if self.regex:
            object.__setattr__(self, "_compiled", re.compile(self.text))

    def matches(self, line: str) -> bool:
        if self._compiled is not None:
            return self._compiled.search(line) is not None
        return self.text in line

    def find_lines(self, lines: Sequence[str]) -> tuple[int, ...]:
        """Return the 1-based numbers of every line containing the token."""
        return tuple(
            number for number, line in enumerate(lines, start=1) if self.matches(line)
        )

    def display(self) -> str:
        return f"/{self.text}/" if self.regex else repr(self.text)


def scan_tokens(
    source: str, patterns: Iterable[TokenPattern]
) -> dict[TokenPattern, tuple[int, ...]]:
    """Record the lines each pattern matches; patterns with no hits are omitted."""
    lines = source.splitlines()
    hits: dict[TokenPattern, tuple[int, ...]] = {}
    for pattern in patterns:
        found = pattern.find_lines(lines)
        if found:
            hits[pattern] = found
    return hits


__all__ = ["TokenPattern", "scan_tokens"]
