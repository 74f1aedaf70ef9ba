from __future__ import annotations

from enum import Enum
from typing import Any


class Stability(str, Enum):
    """Stability levels offered by a declared end-point."""

    # Marked for deprecation, should not be used in new clients. The entry
    # description should outline the migration path.
    DEPRECATED = "deprecated"

    # May change and resources may be deleted without warning. Good for
    # prototypes and end-points with a handful of known consumers.
    EXPERIMENTAL = "experimental"

    # Will not break suddenly; changes are rolled out with gradual migration.
    STABLE = "stable"

    @classmethod
    def parse(cls, value: Any) -> "Stability":
        if not value:
            return cls.EXPERIMENTAL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValueError(
                f"stability must be one of {', '.join(STABILITY_LEVELS)}, got {value!r}"
            ) from None


STABILITY_LEVELS: tuple[str, ...] = tuple(s.value for s in Stability)
