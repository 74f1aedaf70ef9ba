import re
from typing import Optional

from pydantic import BaseModel

from apidecl.domain.errors import APIError
from apidecl.registry.builder import APIBuilder
from apidecl.runtime.schemas import PydanticSchemaValidator


class WidgetIn(BaseModel):
    name: str
    secret: Optional[str] = None


class WidgetOut(BaseModel):
    id: str
    name: str


WIDGETS: dict[str, dict] = {"1": {"id": "1", "name": "first"}}

validator = PydanticSchemaValidator({"widget-in.json": WidgetIn, "widget-out.json": WidgetOut})

builder = APIBuilder(
    name="widgets",
    version="v1",
    title="Widgets API",
    description="Store and fetch widgets",
    params={"id": re.compile(r"^[0-9]+$")},
    context=["store"],
    error_codes={"WidgetLocked": 423},
)


def _limit(value):
    if not value.isdigit():
        return "limit must be an integer"
    return None


@builder.declare({
    "method": "get",
    "route": "/widgets",
    "name": "listWidgets",
    "title": "List widgets",
    "description": "All widgets",
    "stability": "stable",
    "query": {"limit": _limit},
})
def list_widgets(req):
    limit = int(req.query.get("limit", "100"))
    return {"widgets": list(req.context["store"].values())[:limit]}


@builder.declare({
    "method": "get",
    "route": "/widgets/:id",
    "name": "getWidget",
    "title": "Get widget",
    "description": "Fetch one widget",
    "output": "widget-out.json",
    "scopes": [["widgets:read:<id>"], ["widgets:admin"]],
})
async def get_widget(req):
    widget = req.context["store"].get(req.params["id"])
    if widget is None:
        raise APIError("ResourceNotFound", f"no widget {req.params['id']}")
    return widget


@builder.declare({
    "method": "put",
    "route": "/widgets/:id",
    "name": "putWidget",
    "title": "Put widget",
    "description": "Create or replace a widget",
    "input": "widget-in.json",
    "output": "widget-out.json",
    "clean_payload": lambda payload: {**payload, "secret": "<redacted>"} if "secret" in payload else payload,
})
async def put_widget(req):
    if req.payload["name"] == "locked":
        raise APIError("WidgetLocked", "widget is locked")
    widget = {"id": req.params["id"], "name": req.payload["name"]}
    req.context["store"][req.params["id"]] = widget
    return widget


@builder.declare({
    "method": "get",
    "route": "/widgets/:id/raw",
    "name": "rawWidget",
    "title": "Raw widget",
    "description": "Widget as bytes",
    "output": "blob",
    "stability": "deprecated",
})
def raw_widget(req):
    return req.context["store"][req.params["id"]]["name"].encode("utf-8")


@builder.declare({
    "method": "post",
    "route": "/ping",
    "name": "ping",
    "title": "Ping",
    "description": "Internal health check",
    "no_publish": True,
})
def ping(req):
    return None


@builder.declare({
    "method": "get",
    "route": "/broken",
    "name": "broken",
    "title": "Broken",
    "description": "Always fails",
    "output": "widget-out.json",
    "no_publish": True,
})
def broken(req):
    return {"unexpected": True}


# Rich markup and a description longer than any terminal line.
notes = APIBuilder(
    name="notes",
    version="v1",
    title="Notes API",
    description="[bold]Notes[/bold] " + "keeps short notes for later reading, " * 6,
)


@notes.declare({
    "method": "get",
    "route": "/notes/:note",
    "name": "getNote",
    "title": "Get note",
    "description": "[red]Fetch[/red] one note " + "by its identifier " * 8,
    "scopes": {"AnyOf": ["notes:read:<note>", {"if": "draft", "then": "notes:drafts"}]},
    "query": {"draft": re.compile(r"^(true|false)$")},
})
def get_note(req):
    return {"note": req.params["note"]}
