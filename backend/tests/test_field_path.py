"""Tests for dotted field-path helpers."""

from loreline.services.field_path import flatten_state, remove_by_path, set_by_path, to_segments


def test_to_segments_normalizes_brackets_and_whitespace():
    assert to_segments("inventory[0].name") == ["inventory", "0", "name"]
    assert to_segments(" stats . power ") == ["stats", "power"]
    assert to_segments("a..b.") == ["a", "b"]


def test_to_segments_empty_path():
    assert to_segments("") == []
    assert to_segments(None) == []
    assert to_segments(" . ") == []


def test_set_by_path_creates_intermediate_dicts():
    state = {}
    set_by_path(state, "stats.power", 9)
    set_by_path(state, "stats.speed", 3)
    assert state == {"stats": {"power": 9, "speed": 3}}


def test_set_by_path_bracket_index_creates_dict_not_list():
    state = {}
    set_by_path(state, "inventory[0].name", "sword")
    assert state == {"inventory": {"0": {"name": "sword"}}}


def test_set_by_path_replaces_scalar_intermediate():
    state = {"stats": 5}
    set_by_path(state, "stats.power", 1)
    assert state == {"stats": {"power": 1}}


def test_set_by_path_empty_path_is_noop():
    state = {"a": 1}
    set_by_path(state, "", 2)
    assert state == {"a": 1}


def test_remove_by_path_deletes_leaf():
    state = {"stats": {"power": 1, "speed": 2}}
    remove_by_path(state, "stats.power")
    assert state == {"stats": {"speed": 2}}


def test_remove_by_path_missing_or_scalar_intermediate_is_noop():
    state = {"stats": 5, "name": "Aria"}
    remove_by_path(state, "stats.power")
    remove_by_path(state, "missing.deep.key")
    remove_by_path(state, "title")
    remove_by_path(state, "")
    assert state == {"stats": 5, "name": "Aria"}


def test_flatten_state_uses_dotted_leaves():
    state = {"name": "Aria", "stats": {"power": 9, "tags": ["a"]}, "empty": {}}
    assert flatten_state(state) == {
        "name": "Aria",
        "stats.power": 9,
        "stats.tags": ["a"],
        "empty": {},
    }
