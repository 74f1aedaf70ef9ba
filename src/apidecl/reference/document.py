from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from apidecl.domain.models import Entry
from apidecl.registry.normalize import route_params, to_reference_route
from apidecl.runtime.schemas import schema_id

if TYPE_CHECKING:
    from apidecl.registry.builder import APIBuilder

REFERENCE_SCHEMA = "apidecl:api-reference-v0"


class ReferenceEntry(BaseModel):
    type: Literal["function"] = "function"
    method: str
    route: str                  # /widgets/<id>
    args: list[str] = Field(default_factory=list)
    query: list[str] = Field(default_factory=list)
    name: str
    stability: str
    title: str
    description: str
    scopes: Optional[Any] = None
    input: Optional[str] = None
    output: Optional[str] = None


class Reference(BaseModel):
    """Machine-readable API reference, consumed by doc and client generators."""

    model_config = ConfigDict(populate_by_name=True)

    schema_: str = Field(default=REFERENCE_SCHEMA, alias="$schema")
    api_version: str = Field(alias="apiVersion")
    service_name: str = Field(alias="serviceName")
    title: str
    description: str
    base_url: Optional[str] = Field(default=None, alias="baseUrl")
    entries: list[ReferenceEntry] = Field(default_factory=list)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)


def reference_entry(entry: Entry) -> ReferenceEntry:
    return ReferenceEntry(
        method=entry.method,
        route=to_reference_route(entry.route),
        args=route_params(entry.route),
        query=list(entry.query),
        name=entry.name,
        stability=entry.stability.value,
        title=entry.title,
        description=entry.description,
        scopes=entry.scopes,
        input=schema_id(entry.input) if entry.input is not None else None,
        output=schema_id(entry.output) if entry.output is not None else None,
    )


def build_reference(
    api: "APIBuilder",
    base_url: Optional[str] = None,
    entries: Optional[Iterable[Entry]] = None,
) -> Reference:
    """Entries keep declaration order; no_publish entries are left out."""
    source = api.entries if entries is None else entries
    return Reference(
        api_version=api.version,
        service_name=api.name,
        title=api.title,
        description=api.description,
        base_url=base_url,
        entries=[reference_entry(e) for e in source if not e.no_publish],
    )
