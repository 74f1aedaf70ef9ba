from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union


@dataclass(frozen=True)
class Pattern:
    regex: re.Pattern

    def check(self, value: str) -> Optional[str]:
        if self.regex.search(value):
            return None
        return f"must match {self.regex.pattern}"

    def describe(self) -> str:
        return self.regex.pattern


@dataclass(frozen=True)
class Predicate:
    """Wraps fn(value) -> error message, or None when the value is fine."""

    fn: Callable[[str], Optional[str]]

    def check(self, value: str) -> Optional[str]:
        msg = self.fn(value)
        return str(msg) if msg else None

    def describe(self) -> str:
        return getattr(self.fn, "__name__", "predicate")


Validator = Union[Pattern, Predicate]


def as_validator(value: Any) -> Validator:
    """Wrap a compiled regex or a callable. Anything else is rejected."""
    if isinstance(value, (Pattern, Predicate)):
        return value
    if isinstance(value, re.Pattern):
        return Pattern(value)
    if callable(value):
        return Predicate(value)
    raise TypeError(f"expected a compiled regex or a function, got {type(value).__name__}")
