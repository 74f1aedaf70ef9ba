import json

from apidecl.reference.document import Reference, build_reference

import sample_api


def test_reference_skips_unpublished_and_keeps_order():
    ref = build_reference(sample_api.builder, base_url="https://tc.example.com/api/widgets/v1")
    names = [e.name for e in ref.entries]
    assert names == ["listWidgets", "getWidget", "putWidget", "rawWidget"]
    assert ref.service_name == "widgets"
    assert ref.api_version == "v1"


def test_reference_entry_shape():
    ref = build_reference(sample_api.builder)
    by_name = {e.name: e for e in ref.entries}

    get_widget = by_name["getWidget"]
    assert get_widget.method == "get"
    assert get_widget.route == "/widgets/<id>"
    assert get_widget.args == ["id"]
    assert get_widget.scopes == [["widgets:read:<id>"], ["widgets:admin"]]
    assert get_widget.output == "widget-out.json"
    assert get_widget.stability == "experimental"

    assert by_name["listWidgets"].query == ["limit"]
    assert by_name["listWidgets"].stability == "stable"
    assert by_name["rawWidget"].output == "blob"
    assert by_name["putWidget"].input == "widget-in.json"


def test_reference_json_uses_camel_case_aliases():
    ref = build_reference(sample_api.builder, base_url="https://x/api/widgets/v1")
    data = json.loads(ref.to_json())
    assert data["$schema"].startswith("apidecl:")
    assert data["serviceName"] == "widgets"
    assert data["apiVersion"] == "v1"
    assert data["baseUrl"] == "https://x/api/widgets/v1"

    again = Reference.model_validate_json(ref.to_json())
    assert again.model_dump() == ref.model_dump()
