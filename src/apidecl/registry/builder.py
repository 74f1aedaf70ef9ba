from __future__ import annotations

import copy
import json
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from apidecl.domain.errors import DeclarationError
from apidecl.domain.models import HTTP_METHODS, BuilderConfig, Entry
from apidecl.domain.stability import Stability
from apidecl.registry.normalize import normalize_builder_options, normalize_route, route_params
from apidecl.registry.validators import Validator, as_validator
from apidecl.scopes import template as scope_template

if TYPE_CHECKING:
    from apidecl.runtime.service import Service

logger = logging.getLogger(__name__)

REQUIRED_ENTRY_OPTIONS = ("name", "method", "route", "title", "description")
LEGACY_ENTRY_OPTIONS = ("defer_auth", "deferAuth")
KNOWN_ENTRY_OPTIONS = frozenset(
    REQUIRED_ENTRY_OPTIONS
    + (
        "stability",
        "params",
        "query",
        "scopes",
        "input",
        "output",
        "skip_input_validation",
        "skip_output_validation",
        "no_publish",
        "clean_payload",
    )
)


class APIBuilder:
    """
    Registry of declared end-points for one API surface and version.

        builder = APIBuilder(
            name="queue",
            version="v1",
            title="Queue API",
            description="Manage tasks",
        )

        @builder.declare({
            "method": "get",
            "route": "/task/:taskId",
            "name": "task",
            "title": "Get Task",
            "description": "Fetch a task definition",
            "scopes": [["queue:get-task:<taskId>"]],
        })
        async def task(req):
            ...

        service = await builder.build(root_url="https://example.com", validator=validator)

    Entries keep declaration order; that order is the order of the published
    reference and of generated clients.
    """

    def __init__(self, **options: Any):
        self._config: BuilderConfig = normalize_builder_options(options)
        self._entries: list[Entry] = []

    # ----------------------------
    # Identity (read-only)
    # ----------------------------

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def version(self) -> str:
        return self._config.version

    @property
    def title(self) -> str:
        return self._config.title

    @property
    def description(self) -> str:
        return self._config.description

    @property
    def params(self) -> Mapping[str, Validator]:
        return self._config.params

    @property
    def context(self) -> tuple[str, ...]:
        return self._config.context

    @property
    def error_codes(self) -> Mapping[str, int]:
        return self._config.error_codes

    @property
    def entries(self) -> tuple[Entry, ...]:
        return tuple(self._entries)

    def __repr__(self) -> str:
        return f"APIBuilder(name={self.name!r}, version={self.version!r}, entries={len(self._entries)})"

    # ----------------------------
    # Declaration
    # ----------------------------

    def declare(self, options: Mapping[str, Any], handler: Optional[Callable[..., Any]] = None):
        """
        Declare an end-point. Without a handler, returns a decorator.

        Either the entry is appended in full or a DeclarationError is raised
        and the registry is left exactly as it was.
        """
        if handler is None:

            def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
                self.declare(options, fn)
                return fn

            return decorator

        entry = self._build_entry(options, handler)

        for existing in self._entries:
            if existing.route == entry.route and existing.method == entry.method:
                raise DeclarationError("Identical route and method declaration.", entry=entry.name)
        if any(existing.name == entry.name for existing in self._entries):
            raise DeclarationError("This function has already been declared.", entry=entry.name)

        self._entries.append(entry)
        logger.debug("declared %s %s %s (%s)", entry.name, entry.method.upper(), entry.route, entry.stability.value)
        return None

    def _build_entry(self, options: Mapping[str, Any], handler: Callable[..., Any]) -> Entry:
        label = options.get("name") if isinstance(options.get("name"), str) else None

        for key in REQUIRED_ENTRY_OPTIONS:
            if not options.get(key):
                raise DeclarationError(f"Option '{key}' must be provided", entry=label)

        method = str(options["method"]).lower()
        if method not in HTTP_METHODS:
            raise DeclarationError(
                f"method must be one of {', '.join(HTTP_METHODS)}, got {options['method']!r}",
                entry=label,
            )

        try:
            stability = Stability.parse(options.get("stability"))
        except ValueError:
            raise DeclarationError(
                "stability must be a valid stability-level, see Stability for valid options",
                entry=label,
            ) from None

        params: dict[str, Validator] = dict(self._config.params)
        for key, value in (options.get("params") or {}).items():
            try:
                params[key] = as_validator(value)
            except TypeError:
                raise DeclarationError(f"params.{key} must be a regex or a function!", entry=label) from None

        query: dict[str, Validator] = {}
        for key, value in (options.get("query") or {}).items():
            try:
                query[key] = as_validator(value)
            except TypeError:
                raise DeclarationError(f"query.{key} must be a regex or a function!", entry=label) from None

        for key in LEGACY_ENTRY_OPTIONS:
            if options.get(key):
                raise DeclarationError(f"{key} is deprecated and no longer supported!", entry=label)

        unknown = sorted(set(options) - KNOWN_ENTRY_OPTIONS - set(LEGACY_ENTRY_OPTIONS))
        if unknown:
            raise DeclarationError(f"Unknown option(s): {', '.join(unknown)}", entry=label)

        scopes = options.get("scopes")
        if scopes is not None and not scope_template.validate(scopes):
            rendered = json.dumps(scopes, indent=2, default=repr)
            raise DeclarationError(f"Invalid scope expression template: {rendered}", entry=label)
        if scopes is not None:
            # declared scopes are rendered from the path and query-string only
            known = set(route_params(str(options["route"]))) | set(query)
            missing = sorted(scope_template.parameters(scopes) - known)
            if missing:
                raise DeclarationError(
                    f"scopes use '{missing[0]}', which is neither a route parameter nor a query-string key; "
                    "check such scopes in the handler with request.authorize()",
                    entry=label,
                )

        clean_payload = options.get("clean_payload")
        if clean_payload is not None and not callable(clean_payload):
            raise DeclarationError("clean_payload must be a function", entry=label)

        if not callable(handler):
            raise DeclarationError("handler must be callable", entry=label)

        return Entry(
            method=method,  # type: ignore[arg-type]
            route=normalize_route(options["route"]),
            name=options["name"],
            title=options["title"],
            description=options["description"],
            handler=handler,
            stability=stability,
            params=MappingProxyType(params),
            query=MappingProxyType(query),
            scopes=copy.deepcopy(scopes),
            input=options.get("input"),
            output=options.get("output"),
            skip_input_validation=bool(options.get("skip_input_validation", False)),
            skip_output_validation=bool(options.get("skip_output_validation", False)),
            no_publish=bool(options.get("no_publish", False)),
            clean_payload=clean_payload,
        )

    # ----------------------------
    # Composition
    # ----------------------------

    async def build(self, **options: Any) -> "Service":
        """
        Compose a runnable Service; publish its reference first when
        publish=True. Publish failures propagate to the caller.
        """
        from apidecl.runtime.options import RuntimeOptions
        from apidecl.runtime.service import compose_service

        service = compose_service(self, RuntimeOptions.parse(options))
        if service.options.publish:
            await service.publish()
        return service
