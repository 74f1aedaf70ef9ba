import pytest

from apidecl.domain.stability import STABILITY_LEVELS, Stability


def test_levels_are_closed_set():
    assert set(STABILITY_LEVELS) == {"deprecated", "experimental", "stable"}


def test_parse_defaults_to_experimental():
    assert Stability.parse(None) is Stability.EXPERIMENTAL
    assert Stability.parse("") is Stability.EXPERIMENTAL


@pytest.mark.parametrize("value", [False, 0, [], {}])
def test_parse_defaults_any_falsy_value(value):
    assert Stability.parse(value) is Stability.EXPERIMENTAL


def test_parse_accepts_values_and_members():
    assert Stability.parse("stable") is Stability.STABLE
    assert Stability.parse(Stability.DEPRECATED) is Stability.DEPRECATED


def test_parse_rejects_unknown_level():
    with pytest.raises(ValueError):
        Stability.parse("beta")
