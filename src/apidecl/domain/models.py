from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Literal, Mapping, Optional

from apidecl.domain.stability import Stability
from apidecl.registry.validators import Validator

HttpMethod = Literal["get", "post", "put", "patch", "delete", "head"]
HTTP_METHODS: tuple[str, ...] = ("get", "post", "put", "patch", "delete", "head")

BLOB = "blob"


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class BuilderConfig:
    """Normalized builder options; produced by normalize_builder_options()."""

    name: str
    version: str
    title: str
    description: str
    params: Mapping[str, Validator] = field(default_factory=_empty)
    context: tuple[str, ...] = ()
    error_codes: Mapping[str, int] = field(default_factory=_empty)


@dataclass(frozen=True)
class Entry:
    """One declared end-point. Never mutated once accepted by a builder."""

    method: HttpMethod
    route: str
    name: str
    title: str
    description: str
    handler: Callable[..., Any]
    stability: Stability = Stability.EXPERIMENTAL
    params: Mapping[str, Validator] = field(default_factory=_empty)
    query: Mapping[str, Validator] = field(default_factory=_empty)
    scopes: Optional[Any] = None
    input: Optional[Any] = None
    output: Optional[Any] = None
    skip_input_validation: bool = False
    skip_output_validation: bool = False
    no_publish: bool = False
    clean_payload: Optional[Callable[[Any], Any]] = field(default=None, compare=False)

    @property
    def is_blob_output(self) -> bool:
        return self.output == BLOB
