import pytest

from apidecl.domain.errors import ScopeTemplateError
from apidecl.scopes.template import parameters, render, satisfies, scope_matches, validate


@pytest.mark.parametrize(
    "template",
    [
        [["a", "b"], ["c"]],
        [],
        [[]],
        "queue:create-task:<provisionerId>",
        {"AnyOf": ["a", {"AllOf": ["b", "c"]}]},
        {"AllOf": [{"if": "private", "then": "secrets:read"}, "base"]},
        {"AllOf": [{"for": "route", "in": "routes", "each": "queue:route:<route>"}]},
    ],
)
def test_valid_templates(template):
    assert validate(template) is True


@pytest.mark.parametrize(
    "template",
    [
        ["a", "b"],
        [["a", 1]],
        {"nested": {"object": 1}},
        {"AnyOf": "a"},
        {"AnyOf": ["a"], "AllOf": ["b"]},
        {"if": "x"},
        {"for": "x", "in": "y", "each": ["z"]},
        42,
        None,
        "café",
        "",
        [[""]],
    ],
)
def test_invalid_templates(template):
    assert validate(template) is False


def test_render_dnf_and_placeholders():
    expr = render([["read:<id>", "write:<id>"], ["admin"]], {"id": "42"})
    assert expr == {"AnyOf": [{"AllOf": ["read:42", "write:42"]}, {"AllOf": ["admin"]}]}


def test_render_if_and_for():
    template = {
        "AllOf": [
            "base",
            {"if": "private", "then": "secrets:read"},
            {"for": "r", "in": "routes", "each": "route:<r>"},
        ]
    }
    assert render(template, {"private": False, "routes": ["x", "y"]}) == {
        "AllOf": ["base", "route:x", "route:y"]
    }
    assert render(template, {"private": True, "routes": []}) == {"AllOf": ["base", "secrets:read"]}


def test_render_missing_param():
    with pytest.raises(ScopeTemplateError, match="id"):
        render("read:<id>", {})


def test_scope_matching_with_star():
    assert scope_matches("queue:*", "queue:create-task:x")
    assert scope_matches("*", "anything")
    assert scope_matches("a:b", "a:b")
    assert not scope_matches("a:b", "a:bc")


def test_satisfies_dnf():
    expr = render([["a", "b"], ["c"]], {})
    assert satisfies(["a", "b"], expr)
    assert satisfies(["c"], expr)
    assert not satisfies(["a"], expr)
    assert satisfies(["*"], expr)


def test_empty_all_of_is_always_satisfied():
    assert satisfies([], {"AllOf": []})
    assert not satisfies([], {"AnyOf": []})


@pytest.mark.parametrize("value", ["false", "0", "", "No", "off"])
def test_if_treats_false_strings_as_false(value):
    assert render({"if": "private", "then": "secrets:read"}, {"private": value}) is None


@pytest.mark.parametrize("value", ["true", "1", "yes"])
def test_if_treats_other_strings_as_true(value):
    assert render({"if": "private", "then": "secrets:read"}, {"private": value}) == "secrets:read"


def test_parameters_lists_every_name_read():
    template = {
        "AnyOf": [
            [["read:<id>"], ["admin"]],
            {"if": "private", "then": "secrets:<owner>"},
            {"for": "r", "in": "routes", "each": "route:<r>:<id>"},
        ]
    }
    assert parameters(template) == {"id", "private", "owner", "routes"}
    assert parameters("static") == set()
