from __future__ import annotations

import inspect
import json
import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable
from urllib.parse import urlparse

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from apidecl.domain.errors import APIError, ConfigurationError, ScopeTemplateError
from apidecl.domain.models import Entry
from apidecl.domain.stability import Stability
from apidecl.reference.document import Reference, build_reference
from apidecl.reference.publisher import S3ReferencePublisher
from apidecl.registry.normalize import to_router_path
from apidecl.runtime.options import RuntimeOptions
from apidecl.runtime.request import APIRequest
from apidecl.runtime.schemas import schema_id
from apidecl.scopes import template as scope_template

if TYPE_CHECKING:
    from apidecl.registry.builder import APIBuilder

logger = logging.getLogger(__name__)


def api_base_url(root_url: str, name: str, version: str) -> str:
    return f"{root_url.rstrip('/')}/api/{name}/{version}"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Service:
    """
    A builder composed with runtime options.

    Reads the builder's entries once at construction; the builder itself is
    never modified, so several services can be composed from one builder.
    """

    def __init__(self, api: "APIBuilder", options: RuntimeOptions):
        self.api = api
        self.options = options
        self.entries: tuple[Entry, ...] = api.entries
        self.error_codes: dict[str, int] = dict(api.error_codes)
        self.context = MappingProxyType(dict(options.context))
        self.base_url = (options.base_url or api_base_url(options.root_url, api.name, api.version)).rstrip("/")
        self.mount_path = urlparse(self.base_url).path.rstrip("/")
        self.input_limit = options.input_limit_bytes

        self._check_context()
        self._check_schemas()
        self.router = self._build_router()

    # ----------------------------
    # Composition checks
    # ----------------------------

    def _check_context(self) -> None:
        for key in self.api.context:
            if key not in self.context:
                raise ConfigurationError(f"Context must have declared property: '{key}'", field="context")
        unexpected = sorted(set(self.context) - set(self.api.context))
        if unexpected:
            raise ConfigurationError(f"Context has unexpected property: '{unexpected[0]}'", field="context")

    def _check_schemas(self) -> None:
        resolves = getattr(self.options.validator, "resolves", None)
        if resolves is None:
            return
        for entry in self.entries:
            refs = [entry.input]
            if not entry.is_blob_output:
                refs.append(entry.output)
            for ref in refs:
                if ref is not None and not resolves(ref):
                    raise ConfigurationError(
                        f"{entry.name}: schema {schema_id(ref)} is not known to the validator",
                        field="validator",
                    )

    # ----------------------------
    # Routing
    # ----------------------------

    def _build_router(self) -> APIRouter:
        router = APIRouter()
        for entry in self.entries:
            router.add_api_route(
                to_router_path(entry.route),
                self._endpoint(entry),
                methods=[entry.method.upper()],
                name=entry.name,
                summary=entry.title,
                description=entry.description,
                response_model=None,
                include_in_schema=not entry.no_publish,
                deprecated=entry.stability is Stability.DEPRECATED,
            )
        return router

    def app(self) -> FastAPI:
        app = FastAPI(title=self.api.title, description=self.api.description, version=self.api.version)
        app.include_router(self.router, prefix=self.mount_path)
        if self.options.allowed_cors_origin:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=[self.options.allowed_cors_origin],
                allow_methods=["*"],
                allow_headers=["*"],
            )
        return app

    def _endpoint(self, entry: Entry) -> Callable[[Request], Awaitable[Response]]:
        async def endpoint(request: Request) -> Response:
            try:
                return await self._handle(entry, request)
            except APIError as e:
                return self._error_response(entry, request, e)
            except Exception:
                logger.exception("unhandled error in %s", entry.name, extra={"api": self.api.name, "entry": entry.name})
                return self._error_response(
                    entry, request, APIError("InternalServerError", "Internal Server Error")
                )

        endpoint.__name__ = entry.name
        return endpoint

    # ----------------------------
    # Request pipeline
    # ----------------------------

    async def _handle(self, entry: Entry, request: Request) -> Response:
        params = dict(request.path_params)
        for key, value in params.items():
            validator = entry.params.get(key)
            msg = validator.check(value) if validator else None
            if msg:
                raise APIError(
                    "InvalidRequestArguments",
                    f"Invalid URL pattern parameter {key}: {msg}",
                    {"param": key, "value": value},
                )

        query: dict[str, str] = {}
        for key, value in request.query_params.items():
            validator = entry.query.get(key)
            if validator is None:
                raise APIError("InvalidRequestArguments", f"Query-string parameter: {key} is not supported!")
            msg = validator.check(value)
            if msg:
                raise APIError(
                    "InvalidRequestArguments",
                    f"Invalid query-string parameter {key}: {msg}",
                    {"query": key, "value": value},
                )
            query[key] = value

        scopes = None
        if self.options.authenticator is not None:
            scopes = await _maybe_await(self.options.authenticator(request, self.options.nonce_manager))
        if entry.scopes is not None:
            if scopes is None:
                raise APIError("AuthenticationFailed", "request is not authenticated")
            try:
                expression = scope_template.render(entry.scopes, {**query, **params})
            except ScopeTemplateError as e:
                # an optional query-string value the scopes need was not sent
                raise APIError("InsufficientScopes", str(e), {"required": entry.scopes}) from None
            if not scope_template.satisfies(scopes, expression):
                raise APIError(
                    "InsufficientScopes",
                    "client lacks the scopes required for this request",
                    {"required": expression},
                )

        payload = await self._read_payload(entry, request)

        req = APIRequest(
            entry=entry,
            raw=request,
            params=MappingProxyType(params),
            query=MappingProxyType(query),
            payload=payload,
            context=self.context,
            scopes=scopes,
        )
        result = await _maybe_await(entry.handler(req))
        return self._reply(entry, result)

    async def _read_payload(self, entry: Entry, request: Request) -> Any:
        body = await request.body()
        if len(body) > self.input_limit:
            raise APIError("InputTooLarge", f"request body exceeds {self.options.input_limit}")
        if entry.input is None:
            return None

        try:
            payload = json.loads(body) if body else None
        except ValueError as e:
            raise APIError("MalformedPayload", f"request body is not valid JSON: {e}") from None
        request.state.payload = payload

        if not entry.skip_input_validation:
            msg = self.options.validator.validate(payload, entry.input)
            if msg:
                raise APIError("InputValidationError", msg, {"schema": schema_id(entry.input)})
        return payload

    def _reply(self, entry: Entry, result: Any) -> Response:
        if isinstance(result, Response):
            return result
        if entry.is_blob_output:
            content = result if isinstance(result, (bytes, bytearray)) else str(result).encode("utf-8")
            return Response(content=bytes(content), media_type="application/octet-stream")
        if entry.output is not None and not entry.skip_output_validation:
            msg = self.options.validator.validate(result, entry.output)
            if msg:
                logger.error(
                    "output of %s does not match %s: %s",
                    entry.name,
                    schema_id(entry.output),
                    msg,
                    extra={"api": self.api.name, "entry": entry.name},
                )
                raise APIError("InternalServerError", "Internal Server Error")
        if result is None and entry.output is None:
            return Response(status_code=204)
        return JSONResponse(jsonable_encoder(result))

    def _error_response(self, entry: Entry, request: Request, err: APIError) -> JSONResponse:
        code = err.code
        status = self.error_codes.get(code)
        if status is None:
            logger.error("%s raised undeclared error code %s", entry.name, code, extra={"error_code": code})
            code, status = "InternalServerError", self.error_codes.get("InternalServerError", 500)

        payload = getattr(request.state, "payload", None)
        if payload is not None and entry.clean_payload is not None:
            payload = entry.clean_payload(payload)

        body = {
            "code": code,
            "message": err.message,
            "requestInfo": {
                "method": entry.name,
                "params": dict(request.path_params),
                "payload": payload,
                "time": datetime.now(timezone.utc).isoformat(),
            },
            "details": err.details,
        }
        return JSONResponse(jsonable_encoder(body), status_code=status)

    # ----------------------------
    # Reference
    # ----------------------------

    def reference(self) -> Reference:
        return build_reference(self.api, base_url=self.base_url, entries=self.entries)

    async def publish(self) -> str:
        publisher = self.options.publisher or S3ReferencePublisher(
            bucket=self.options.reference_bucket, aws=self.options.aws
        )
        key = await publisher.publish(self.reference())
        logger.info("published reference for %s/%s", self.api.name, self.api.version, extra={"key": key})
        return key


def compose_service(api: "APIBuilder", options: RuntimeOptions) -> Service:
    """Build a Service from a finished builder; raises ConfigurationError."""
    service = Service(api, options)
    logger.info(
        "composed %s/%s with %d entries at %s",
        api.name,
        api.version,
        len(service.entries),
        service.base_url,
        extra={"api": api.name},
    )
    return service
