"""
Scope expression templates.

A template is one of:

  - a scope string, optionally with <param> placeholders
  - disjunctive normal form: [["a", "b"], ["c"]] means (a AND b) OR c
  - {"AnyOf": [template, ...]} / {"AllOf": [template, ...]}
  - {"if": "param", "then": template}         (dropped when param is false)
  - {"for": "var", "in": "param", "each": "scope:<var>"}

render() turns a template plus request parameters into a plain expression
made only of strings, AnyOf and AllOf. satisfies() checks an expression
against the scopes granted to a caller; a granted scope ending in "*"
matches every scope with that prefix.

Request parameters arrive as strings, so an `if` condition treats the
strings "", "0", "false", "no" and "off" (any case) as false.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from apidecl.domain.errors import ScopeTemplateError

_PLACEHOLDER = re.compile(r"<([A-Za-z_][A-Za-z0-9_]*)>")
_SCOPE_CHARS = re.compile(r"^[\x20-\x7e]+$")


def _is_scope(value: Any) -> bool:
    return isinstance(value, str) and bool(_SCOPE_CHARS.match(value))


def _is_dnf(value: Any) -> bool:
    return isinstance(value, list) and all(
        isinstance(group, list) and all(_is_scope(s) for s in group) for group in value
    )


def validate(template: Any) -> bool:
    if _is_scope(template):
        return True
    if isinstance(template, list):
        return _is_dnf(template)
    if not isinstance(template, dict):
        return False

    keys = set(template)
    if keys in ({"AnyOf"}, {"AllOf"}):
        items = next(iter(template.values()))
        return isinstance(items, list) and all(validate(t) for t in items)
    if keys == {"if", "then"}:
        return isinstance(template["if"], str) and validate(template["then"])
    if keys == {"for", "in", "each"}:
        return (
            isinstance(template["for"], str)
            and isinstance(template["in"], str)
            and _is_scope(template["each"])
        )
    return False


_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def parameters(template: Any) -> set[str]:
    """Names of the request parameters a valid template reads when rendered."""
    if isinstance(template, str):
        return set(_PLACEHOLDER.findall(template))
    if isinstance(template, list):
        return {name for group in template for s in group for name in _PLACEHOLDER.findall(s)}
    if "AnyOf" in template or "AllOf" in template:
        items = next(iter(template.values()))
        return set().union(*(parameters(t) for t in items))
    if "if" in template:
        return {template["if"]} | parameters(template["then"])
    return {template["in"]} | (set(_PLACEHOLDER.findall(template["each"])) - {template["for"]})


def _substitute(scope: str, params: Mapping[str, Any]) -> str:
    def repl(m: re.Match) -> str:
        key = m.group(1)
        if key not in params:
            raise ScopeTemplateError(f"scope template requires parameter '{key}'")
        return str(params[key])

    return _PLACEHOLDER.sub(repl, scope)


def _render_items(items: Iterable[Any], params: Mapping[str, Any]) -> list[Any]:
    out: list[Any] = []
    for item in items:
        if isinstance(item, dict) and set(item) == {"for", "in", "each"}:
            out.extend(_render_for(item, params))
            continue
        rendered = render(item, params)
        if rendered is not None:
            out.append(rendered)
    return out


def _render_for(template: Mapping[str, Any], params: Mapping[str, Any]) -> list[str]:
    source = template["in"]
    if source not in params:
        raise ScopeTemplateError(f"scope template requires parameter '{source}'")
    values = params[source]
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ScopeTemplateError(f"parameter '{source}' must be a list")
    return [_substitute(template["each"], {**params, template["for"]: v}) for v in values]


def render(template: Any, params: Mapping[str, Any]) -> Any:
    """Returns None only for an `if` whose condition is falsy."""
    if not validate(template):
        raise ScopeTemplateError(f"invalid scope template: {template!r}")

    if isinstance(template, str):
        return _substitute(template, params)
    if isinstance(template, list):
        return {"AnyOf": [{"AllOf": [_substitute(s, params) for s in group]} for group in template]}
    if "AnyOf" in template:
        return {"AnyOf": _render_items(template["AnyOf"], params)}
    if "AllOf" in template:
        return {"AllOf": _render_items(template["AllOf"], params)}
    if "if" in template:
        if _truthy(params.get(template["if"])):
            return render(template["then"], params)
        return None
    return {"AllOf": _render_for(template, params)}


def scope_matches(granted: str, required: str) -> bool:
    if granted.endswith("*"):
        return required.startswith(granted[:-1])
    return granted == required


def satisfies(granted: Iterable[str], expression: Any) -> bool:
    granted = list(granted)
    if expression is None:
        return True
    if isinstance(expression, str):
        return any(scope_matches(g, expression) for g in granted)
    if "AnyOf" in expression:
        return any(satisfies(granted, e) for e in expression["AnyOf"])
    if "AllOf" in expression:
        return all(satisfies(granted, e) for e in expression["AllOf"])
    raise ScopeTemplateError(f"not a rendered scope expression: {expression!r}")
