"""Error hierarchy for builders, declarations and request handlers.

Configuration and declaration errors are raised synchronously while the API
surface is being defined. APIError is raised by handlers at request time and
mapped to an HTTP status through the builder's error-code table.
"""

from __future__ import annotations

from typing import Any, Optional


ERROR_CODES: dict[str, int] = {
    "MalformedPayload": 400,
    "InvalidRequestArguments": 400,
    "InputValidationError": 400,
    "InputError": 400,
    "AuthenticationFailed": 401,
    "InsufficientScopes": 403,
    "ResourceNotFound": 404,
    "RequestConflict": 409,
    "ResourceExpired": 410,
    "InputTooLarge": 413,
    "InternalServerError": 500,
}


class ApiDeclError(Exception):
    """Base exception for apidecl."""


class ConfigurationError(ApiDeclError, ValueError):
    """Builder or runtime options are invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class DeclarationError(ApiDeclError, ValueError):
    """A single declare() call was rejected; earlier entries are untouched."""

    def __init__(self, message: str, entry: Optional[str] = None):
        if entry:
            message = f"{entry}: {message}"
        super().__init__(message)
        self.message = message
        self.entry = entry


class ScopeTemplateError(ApiDeclError, ValueError):
    """A scope template is malformed or cannot be rendered."""


class APIError(ApiDeclError):
    """Raised from a handler to answer with a declared error code."""

    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message
        self.details = details or {}
