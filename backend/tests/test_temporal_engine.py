"""Tests for pure state reconstruction: snapshot, projection, replay and diff."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from loreline.models import StateChangeStatus, SubjectType, TimelineStateChange
from loreline.services.temporal_engine import (
    build_projection,
    diff_states,
    is_removal,
    parse_serialized_value,
    project_subject,
    replay_history,
    select_snapshot,
)

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)
_ids = count(1)


def change(
    field_path,
    new_value=None,
    tick=0,
    change_type="set",
    subject_id="c1",
    subject_type=SubjectType.CHARACTER,
    status=StateChangeStatus.ACTIVE,
    updated_offset=0,
    old_value=None,
):
    number = next(_ids)
    stamp = BASE_TIME + timedelta(seconds=updated_offset or number)
    return TimelineStateChange(
        id=f"sc{number}",
        axis_id="a1",
        subject_type=subject_type,
        subject_id=subject_id,
        field_path=field_path,
        change_type=change_type,
        old_value=old_value,
        new_value=new_value,
        effective_tick=tick,
        status=status,
        created_at=stamp,
        updated_at=stamp,
    )


@pytest.mark.parametrize("change_type", ["remove", "DELETE", " unset ", "Remove"])
def test_is_removal_recognizes_removal_types(change_type):
    assert is_removal(change_type)


@pytest.mark.parametrize("change_type", ["set", "update", "", None, "removed"])
def test_is_removal_rejects_other_types(change_type):
    assert not is_removal(change_type)


def test_parse_serialized_value_falls_back_to_raw_string():
    assert parse_serialized_value('{"a": 1}') == {"a": 1}
    assert parse_serialized_value("42") == 42
    assert parse_serialized_value("null") is None
    assert parse_serialized_value("plain text") == "plain text"
    assert parse_serialized_value(None) is None


def test_snapshot_keeps_latest_effective_tick_per_field():
    early = change("title", '"squire"', tick=1)
    late = change("title", '"knight"', tick=5)
    future = change("title", '"king"', tick=50)
    winners = select_snapshot([late, future, early], tick=10)
    assert [w.id for w in winners] == [late.id]


def test_snapshot_breaks_ties_on_updated_at():
    first = change("title", '"squire"', tick=5, updated_offset=100)
    second = change("title", '"knight"', tick=5, updated_offset=200)
    winners = select_snapshot([second, first], tick=5)
    assert winners[0].id == second.id


def test_snapshot_ignores_inactive_rows():
    active = change("title", '"squire"', tick=1)
    reverted = change("title", '"knight"', tick=2, status=StateChangeStatus.REVERTED)
    void = change("title", '"king"', tick=3, status=StateChangeStatus.VOID)
    winners = select_snapshot([active, reverted, void], tick=10)
    assert [w.id for w in winners] == [active.id]


def test_snapshot_orders_by_subject_and_field():
    rows = [
        change("zeta", "1", subject_id="c2"),
        change("beta", "1", subject_id="c1"),
        change("alpha", "1", subject_id="c1"),
        change("name", "1", subject_id="f1", subject_type=SubjectType.FACTION),
    ]
    winners = select_snapshot(rows, tick=0)
    assert [(w.subject_type.value, w.subject_id, w.field_path) for w in winners] == [
        ("character", "c1", "alpha"),
        ("character", "c1", "beta"),
        ("character", "c2", "zeta"),
        ("faction", "f1", "name"),
    ]


def test_projection_builds_nested_state_and_omits_removals():
    rows = [
        change("stats.power", "9", tick=1),
        change("title", '"squire"', tick=1),
        change("title", None, tick=2, change_type="remove"),
        change("nickname", None, tick=1),
    ]
    subjects = build_projection(select_snapshot(rows, tick=5))
    assert len(subjects) == 1
    subject = subjects[0]
    assert subject.state == {"stats": {"power": 9}, "nickname": None}
    fields = {f.field_path: f for f in subject.fields}
    assert set(fields) == {"nickname", "stats.power", "title"}
    assert "value" not in fields["title"].model_fields_set
    assert fields["title"].change_type == "remove"
    assert fields["nickname"].value is None
    assert "value" in fields["nickname"].model_fields_set
    assert fields["stats.power"].raw_value == "9"


def test_projection_groups_subjects():
    rows = [
        change("title", '"squire"', subject_id="c1"),
        change("title", '"mage"', subject_id="c2"),
    ]
    subjects = build_projection(select_snapshot(rows, tick=0))
    assert [(s.subject_id, s.state) for s in subjects] == [
        ("c1", {"title": "squire"}),
        ("c2", {"title": "mage"}),
    ]


def test_project_subject_filters_to_one_subject():
    rows = [
        change("title", '"squire"', subject_id="c1", tick=1),
        change("title", '"mage"', subject_id="c2", tick=1),
        change("title", '"knight"', subject_id="c1", tick=9),
    ]
    assert project_subject(rows, 5, "character", "c1") == {"title": "squire"}
    assert project_subject(rows, 10, "character", "c1") == {"title": "knight"}
    assert project_subject(rows, 0, "character", "c1") == {}


def test_replay_history_records_independent_state_after_each_step():
    rows = [
        change("stats.power", "1", tick=1),
        change("stats.power", "2", tick=2, old_value="1"),
        change("stats.power", None, tick=3, change_type="unset", old_value="2"),
    ]
    history = replay_history(rows)
    states = [entry.state_after for entry in history.entries]
    assert states == [{"stats": {"power": 1}}, {"stats": {"power": 2}}, {"stats": {}}]
    assert history.final_state == {"stats": {}}

    states[0]["stats"]["power"] = 99
    assert history.entries[1].state_after == {"stats": {"power": 2}}

    assert history.entries[1].old_value == 1
    assert "new_value" not in history.entries[2].model_fields_set


def test_replay_history_is_deterministic():
    rows = [
        change("title", '"squire"', tick=1),
        change("title", '"knight"', tick=2),
        change("motto", '"onward"', tick=2),
    ]
    assert replay_history(rows).model_dump() == replay_history(rows).model_dump()


def test_diff_states_partitions_paths():
    before = {"title": "squire", "stats": {"power": 1}, "motto": "onward"}
    after = {"title": "knight", "stats": {"power": 1, "speed": 4}, "home": "Vale"}
    diff = diff_states("character", "c1", 1, 9, before, after)

    assert [(e.field_path, e.to_value) for e in diff.added] == [("home", "Vale"), ("stats.speed", 4)]
    assert [(e.field_path, e.from_value) for e in diff.removed] == [("motto", "onward")]
    assert [(e.field_path, e.from_value, e.to_value) for e in diff.updated] == [("title", "squire", "knight")]

    paths = [e.field_path for e in diff.added + diff.removed + diff.updated]
    assert len(paths) == len(set(paths))


def test_diff_of_identical_states_is_empty():
    state = {"stats": {"power": 1}, "tags": ["a", "b"]}
    diff = diff_states("character", "c1", 1, 1, state, {"stats": {"power": 1}, "tags": ["a", "b"]})
    assert diff.added == [] and diff.removed == [] and diff.updated == []
