from pathlib import Path

import pytest

from apidecl.reference.document import build_reference
from apidecl.registry.builder import APIBuilder
from apidecl.runtime.schemas import PydanticSchemaValidator
from apidecl.store.sqlite_store import ReferenceStore


def handler(req):
    return {}


def make_builder(*routes):
    b = APIBuilder(name="widgets", version="v1", title="Widgets", description="Widget store")
    for name, route in routes:
        b.declare(
            {"method": "get", "route": route, "name": name, "title": name, "description": name},
            handler,
        )
    return b


def test_record_skips_identical_reference(tmp_path: Path):
    store = ReferenceStore(tmp_path / "refs.db")
    ref = build_reference(make_builder(("a", "/a")))

    first = store.record(ref)
    second = store.record(ref)
    assert first == second
    assert len(store.list_references()) == 1

    stored = store.latest("widgets", "v1")
    assert stored.entry_count == 1
    assert stored.key == "widgets/v1/api.json"
    assert store.get_reference(first).model_dump() == ref.model_dump()


def test_diff_references(tmp_path: Path):
    store = ReferenceStore(tmp_path / "refs.db")
    old = store.record(build_reference(make_builder(("a", "/a"), ("b", "/b"))))
    new = store.record(build_reference(make_builder(("a", "/a2"), ("c", "/c"))))
    assert old != new

    d = store.diff_references(old, new)
    assert {x["name"] for x in d["added"]} == {"c"}
    assert {x["name"] for x in d["removed"]} == {"b"}
    assert {x["route"] for x in d["changed"]} == {"/a2"}

    refs = store.list_references(service_name="widgets")
    assert [r.id for r in refs] == [new, old]


def test_diff_unknown_id(tmp_path: Path):
    store = ReferenceStore(tmp_path / "refs.db")
    with pytest.raises(KeyError):
        store.diff_references(1, 2)


@pytest.mark.asyncio
async def test_store_as_publisher(tmp_path: Path):
    store = ReferenceStore(tmp_path / "refs.db")
    b = make_builder(("a", "/a"))
    service = await b.build(
        root_url="https://tc.example.com",
        validator=PydanticSchemaValidator(),
        publish=True,
        publisher=store,
    )
    assert store.latest("widgets", "v1") is not None
    assert store.get_reference(store.latest("widgets", "v1").id).base_url == service.base_url
