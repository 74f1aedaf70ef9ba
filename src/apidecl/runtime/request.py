from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from fastapi import Request

from apidecl.domain.errors import APIError
from apidecl.domain.models import Entry
from apidecl.scopes import template as scope_template


@dataclass
class APIRequest:
    """What a handler receives for one call of a declared entry."""

    entry: Entry
    raw: Request
    params: Mapping[str, str]
    query: Mapping[str, str]
    payload: Any = None
    context: Mapping[str, Any] = field(default_factory=dict)
    scopes: Optional[list[str]] = None

    def satisfies(self, template: Any, **params: Any) -> bool:
        """Check a scope template against the caller, rendered with extra params."""
        if self.scopes is None:
            return False
        expression = scope_template.render(template, {**self.params, **params})
        return scope_template.satisfies(self.scopes, expression)

    def authorize(self, template: Any, **params: Any) -> None:
        if self.scopes is None:
            raise APIError("AuthenticationFailed", "request is not authenticated")
        if not self.satisfies(template, **params):
            raise APIError(
                "InsufficientScopes",
                "client lacks the scopes required for this request",
                {"required": scope_template.render(template, {**self.params, **params})},
            )
