from __future__ import annotations

import re
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from apidecl.config import get_settings
from apidecl.domain.errors import ConfigurationError

_SIZE = re.compile(r"^\s*(\d+)\s*(b|kb|mb|gb)?\s*$", re.IGNORECASE)
_UNITS = {"b": 1, "kb": 1024, "mb": 1024**2, "gb": 1024**3}


def parse_size(value: str | int) -> int:
    """'10mb' -> 10485760. Plain integers are bytes."""
    if isinstance(value, int):
        return value
    m = _SIZE.match(value)
    if not m:
        raise ValueError(f"invalid size: {value!r}")
    return int(m.group(1)) * _UNITS[(m.group(2) or "b").lower()]


class AWSOptions(BaseModel):
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = Field(default_factory=lambda: get_settings().aws_region)
    endpoint_url: Optional[str] = None


class RuntimeOptions(BaseModel):
    """Options consumed when composing a builder into a Service."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    root_url: str
    validator: Any
    input_limit: str | int = "10mb"
    allowed_cors_origin: Optional[str] = "*"
    context: dict[str, Any] = Field(default_factory=dict)
    nonce_manager: Optional[Callable[..., Any]] = None
    # (request, nonce_manager) -> granted scopes, or None if unauthenticated
    authenticator: Optional[Callable[..., Any]] = None
    publish: bool = False
    base_url: Optional[str] = None
    reference_bucket: str = Field(default_factory=lambda: get_settings().reference_bucket)
    aws: Optional[AWSOptions] = None
    publisher: Optional[Any] = None

    @field_validator("root_url")
    @classmethod
    def strip_root_url(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("root_url must be provided")
        return v

    @field_validator("validator")
    @classmethod
    def check_validator(cls, v: Any) -> Any:
        if v is None or not callable(getattr(v, "validate", None)):
            raise ValueError("validator must provide validate(payload, schema)")
        return v

    @field_validator("input_limit")
    @classmethod
    def check_input_limit(cls, v: str | int) -> str | int:
        parse_size(v)
        return v

    @field_validator("publisher")
    @classmethod
    def check_publisher(cls, v: Any) -> Any:
        if v is not None and not callable(getattr(v, "publish", None)):
            raise ValueError("publisher must provide an async publish(reference)")
        return v

    @property
    def input_limit_bytes(self) -> int:
        return parse_size(self.input_limit)

    @classmethod
    def parse(cls, options: Mapping[str, Any]) -> "RuntimeOptions":
        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or None
            raise ConfigurationError(f"Invalid build options: {e}", field=field) from e
