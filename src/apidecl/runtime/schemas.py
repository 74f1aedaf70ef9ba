from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from pydantic import TypeAdapter, ValidationError


class PayloadValidator(Protocol):
    def validate(self, payload: Any, schema: Any) -> Optional[str]:
        """Return an error message, or None when payload conforms to schema."""
        ...


def schema_id(schema: Any) -> str:
    if isinstance(schema, str):
        return schema
    return getattr(schema, "__name__", repr(schema))


class PydanticSchemaValidator:
    """
    Payload validator backed by pydantic.

    Schema references are either ids registered up-front ("widget.json")
    or pydantic-compatible types (models, TypedDicts, list[int], ...) passed
    directly in the entry declaration.
    """

    def __init__(self, schemas: Optional[Mapping[str, Any]] = None):
        self._schemas: dict[str, Any] = dict(schemas or {})
        self._adapters: dict[str, TypeAdapter] = {}

    def register(self, ref: str, schema: Any) -> None:
        self._schemas[ref] = schema
        self._adapters.pop(ref, None)

    def resolves(self, schema: Any) -> bool:
        if isinstance(schema, str):
            return schema in self._schemas
        return isinstance(schema, type) or hasattr(schema, "__origin__")

    def _adapter(self, schema: Any) -> TypeAdapter:
        key = schema_id(schema) if isinstance(schema, str) else f"{id(schema)}:{schema_id(schema)}"
        adapter = self._adapters.get(key)
        if adapter is None:
            target = self._schemas[schema] if isinstance(schema, str) else schema
            adapter = TypeAdapter(target)
            self._adapters[key] = adapter
        return adapter

    def validate(self, payload: Any, schema: Any) -> Optional[str]:
        if not self.resolves(schema):
            return f"unknown schema {schema_id(schema)}"
        try:
            self._adapter(schema).validate_python(payload)
        except ValidationError as e:
            # payload values stay out of the message; they may hold secrets
            return "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors(include_input=False)
            )
        return None

    def json_schema(self, schema: Any) -> dict[str, Any]:
        return self._adapter(schema).json_schema()
