from __future__ import annotations

import re
from types import MappingProxyType
from typing import Any, Mapping

from apidecl.domain.errors import ERROR_CODES, ConfigurationError
from apidecl.domain.models import BuilderConfig
from apidecl.registry.validators import Validator, as_validator


_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")
_VERSION = re.compile(r"^v[0-9]+$")
_ERROR_CODE = re.compile(r"^[A-Z][A-Za-z0-9]*$")

_PARAM_COLON = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")
_MULTI_SLASH = re.compile(r"/{2,}")

REQUIRED_BUILDER_OPTIONS = ("title", "description", "name", "version")
LEGACY_BUILDER_OPTIONS = ("schema_prefix", "schemaPrefix")
KNOWN_BUILDER_OPTIONS = frozenset(REQUIRED_BUILDER_OPTIONS + ("params", "context", "error_codes"))


def normalize_builder_options(options: Mapping[str, Any]) -> BuilderConfig:
    """
    Validate raw builder options and return a fully defaulted BuilderConfig.

    The input mapping is not modified. Any invalid value fails the whole
    construction; nothing is partially accepted.
    """
    for key in LEGACY_BUILDER_OPTIONS:
        if key in options:
            raise ConfigurationError(f"{key} is no longer allowed!", field=key)

    unknown = sorted(set(options) - KNOWN_BUILDER_OPTIONS)
    if unknown:
        raise ConfigurationError(f"Unknown option(s): {', '.join(unknown)}", field=unknown[0])

    for key in REQUIRED_BUILDER_OPTIONS:
        if not options.get(key):
            raise ConfigurationError(f"Option '{key}' must be provided", field=key)

    name = options["name"]
    version = options["version"]
    if not isinstance(name, str) or not _NAME.match(name):
        raise ConfigurationError(f'api name "{name}" is not valid', field="name")
    if not isinstance(version, str) or not _VERSION.match(version):
        raise ConfigurationError(f'api version "{version}" is not valid', field="version")

    error_codes = merge_error_codes(options.get("error_codes") or {})

    params: dict[str, Validator] = {}
    for key, value in (options.get("params") or {}).items():
        try:
            params[key] = as_validator(value)
        except TypeError as e:
            raise ConfigurationError(f"params.{key}: {e}", field="params") from None

    context = options.get("context") or ()
    if isinstance(context, str) or not all(isinstance(c, str) for c in context):
        raise ConfigurationError("context must be a sequence of names", field="context")

    return BuilderConfig(
        name=name,
        version=version,
        title=options["title"],
        description=options["description"],
        params=MappingProxyType(params),
        context=tuple(context),
        error_codes=MappingProxyType(error_codes),
    )


def merge_error_codes(overrides: Mapping[str, Any]) -> dict[str, int]:
    merged: dict[str, Any] = dict(ERROR_CODES)
    merged.update(overrides)
    for key, value in merged.items():
        if not isinstance(key, str) or not _ERROR_CODE.match(key):
            raise ConfigurationError(f"Invalid error code: {key}", field="error_codes")
        # bool is an int subclass; a status code is never True/False
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigurationError(
                f"Expected HTTP status code to be int for {key}", field="error_codes"
            )
    return merged


def normalize_route(route: str) -> str:
    r = (route or "").strip()
    if not r.startswith("/"):
        r = "/" + r
    r = _MULTI_SLASH.sub("/", r)
    if r != "/" and r.endswith("/"):
        r = r[:-1]
    return r


def to_router_path(route: str) -> str:
    # /widgets/:id -> /widgets/{id}
    return _PARAM_COLON.sub(r"{\1}", route)


def to_reference_route(route: str) -> str:
    # /widgets/:id -> /widgets/<id>
    return _PARAM_COLON.sub(r"<\1>", route)


def route_params(route: str) -> list[str]:
    return _PARAM_COLON.findall(route)
