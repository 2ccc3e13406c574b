"""Tests for the state-change ledger and its temporal queries."""

import sqlite3

import pytest

from loreline.models import (
    StateDiffQuery,
    StateHistoryQuery,
    StateSnapshotQuery,
    SubjectType,
    TimelineAxisInput,
    TimelineStateChangeInput,
    TimelineStateChangeListQuery,
)

from conftest import DB_NAME


def _input(world, **overrides):
    values = {
        "axis_id": world.axis.id,
        "subject_type": SubjectType.CHARACTER,
        "subject_id": world.character.id,
        "field_path": "title",
        "change_type": "set",
        "new_value": '"knight"',
        "effective_tick": 10,
    }
    values.update(overrides)
    return TimelineStateChangeInput(**values)


def _links(databases, change_id):
    with sqlite3.connect(databases.path_for(DB_NAME)) as conn:
        return sorted(conn.execute(
            """SELECT from_label, from_id, rel_type, to_label, to_id FROM graph_links
               WHERE from_id = ? OR to_id = ?""",
            (change_id, change_id),
        ).fetchall())


class TestWrites:
    def test_marker_fills_era_and_segment(self, run, ledger, world):
        change = run(ledger.create_state_change(DB_NAME, _input(world, marker_id=world.marker.id)))
        assert change.era_id == world.era.id
        assert change.segment_id == world.segment.id
        assert change.status.value == "active"

    def test_marker_on_other_axis_is_rejected(self, run, ledger, structure, world):
        other = run(structure.create_axis(DB_NAME, TimelineAxisInput(name="Mirror", axis_type="parallel")))
        with pytest.raises(ValueError, match="marker axisId does not match axisId"):
            run(ledger.create_state_change(DB_NAME, _input(world, axis_id=other.id, marker_id=world.marker.id)))

    def test_conflicting_era_is_rejected(self, run, ledger, world):
        data = _input(world, marker_id=world.marker.id, era_id="other-era")
        with pytest.raises(ValueError, match="marker eraId does not match eraId"):
            run(ledger.create_state_change(DB_NAME, data))

    def test_conflicting_segment_is_rejected(self, run, ledger, world):
        data = _input(world, marker_id=world.marker.id, segment_id="other-segment")
        with pytest.raises(ValueError, match="marker segmentId does not match segmentId"):
            run(ledger.create_state_change(DB_NAME, data))

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"axis_id": "missing"}, "axis not found"),
            ({"marker_id": "missing"}, "marker not found"),
            ({"event_id": "missing"}, "event not found"),
            ({"subject_id": "missing"}, "subject not found"),
        ],
    )
    def test_missing_references(self, run, ledger, world, overrides, message):
        with pytest.raises(LookupError, match=message):
            run(ledger.create_state_change(DB_NAME, _input(world, **overrides)))

    def test_timeline_records_are_valid_subjects(self, run, ledger, world):
        change = run(ledger.create_state_change(DB_NAME, _input(
            world,
            subject_type=SubjectType.TIMELINE_ERA,
            subject_id=world.era.id,
            field_path="summary",
        )))
        assert change.subject_type == SubjectType.TIMELINE_ERA

    def test_relationships_follow_the_record(self, run, ledger, databases, world):
        change = run(ledger.create_state_change(
            DB_NAME, _input(world, marker_id=world.marker.id, event_id=world.event.id)
        ))
        assert _links(databases, change.id) == sorted([
            ("Event", world.event.id, "CAUSES_CHANGE", "TimelineStateChange", change.id),
            ("TimelineMarker", world.marker.id, "CAUSES_CHANGE", "TimelineStateChange", change.id),
            ("TimelineStateChange", change.id, "APPLIES_TO", "Character", world.character.id),
        ])

        run(ledger.update_state_change(DB_NAME, change.id, _input(
            world, subject_type=SubjectType.EVENT, subject_id=world.event.id, field_path="name"
        )))
        assert _links(databases, change.id) == [
            ("TimelineStateChange", change.id, "APPLIES_TO", "Event", world.event.id),
        ]

        assert run(ledger.delete_state_change(DB_NAME, change.id)) is True
        assert _links(databases, change.id) == []

    def test_failed_write_leaves_no_row(self, run, ledger, databases, world):
        with pytest.raises(LookupError):
            run(ledger.create_state_change(DB_NAME, _input(world, subject_id="missing")))
        _, total = run(ledger.list_state_changes(DB_NAME, TimelineStateChangeListQuery()))
        assert total == 0

    def test_update_preserves_created_at(self, run, ledger, world):
        change = run(ledger.create_state_change(DB_NAME, _input(world)))
        updated = run(ledger.update_state_change(
            DB_NAME, change.id, _input(world, new_value='"king"', status="reverted")
        ))
        assert updated.created_at == change.created_at
        assert updated.updated_at >= change.updated_at
        assert updated.new_value == '"king"'
        assert updated.status.value == "reverted"

    def test_update_missing_change_returns_none(self, run, ledger, world):
        assert run(ledger.update_state_change(DB_NAME, "missing", _input(world))) is None

    def test_non_string_values_are_serialized(self, run, ledger, world):
        change = run(ledger.create_state_change(DB_NAME, _input(world, new_value={"rank": 2})))
        assert change.new_value == '{"rank": 2}'


class TestListing:
    def test_filters_and_order(self, run, ledger, world):
        run(ledger.create_state_change(DB_NAME, _input(world, field_path="stats.power", effective_tick=30)))
        run(ledger.create_state_change(DB_NAME, _input(world, field_path="title", effective_tick=5)))
        run(ledger.create_state_change(DB_NAME, _input(world, field_path="stats.speed", effective_tick=20)))

        changes, total = run(ledger.list_state_changes(DB_NAME, TimelineStateChangeListQuery()))
        assert total == 3
        assert [c.effective_tick for c in changes] == [5, 20, 30]

        changes, total = run(ledger.list_state_changes(
            DB_NAME, TimelineStateChangeListQuery(field_path="STATS", tick_to=25)
        ))
        assert total == 1
        assert changes[0].field_path == "stats.speed"


class TestTemporalQueries:
    @pytest.fixture
    def timeline(self, run, ledger, world):
        """title: squire@1 -> knight@10 (via marker) -> removed@20; power: 3@5 -> 7@15; a void row at 12."""
        writes = [
            _input(world, field_path="title", new_value='"squire"', effective_tick=1),
            _input(world, field_path="stats.power", new_value="3", effective_tick=5),
            _input(world, field_path="title", new_value='"knight"', effective_tick=10, marker_id=world.marker.id),
            _input(world, field_path="title", new_value='"usurper"', effective_tick=12, status="void"),
            _input(world, field_path="stats.power", new_value="7", effective_tick=15, old_value="3"),
            _input(world, field_path="title", change_type="remove", new_value=None, effective_tick=20),
        ]
        return [run(ledger.create_state_change(DB_NAME, data)) for data in writes]

    def test_snapshot_returns_latest_active_row_per_field(self, run, ledger, world, timeline):
        rows = run(ledger.snapshot(DB_NAME, StateSnapshotQuery(axis_id=world.axis.id, tick=12)))
        assert [(r.field_path, r.new_value) for r in rows] == [("stats.power", "3"), ("title", '"knight"')]

    def test_projection_scenario(self, run, ledger, world, timeline):
        query = StateSnapshotQuery(axis_id=world.axis.id, tick=10)
        subjects = run(ledger.projection(DB_NAME, query))
        assert len(subjects) == 1
        assert subjects[0].state == {"title": "knight", "stats": {"power": 3}}
        title = next(f for f in subjects[0].fields if f.field_path == "title")
        assert title.marker_id == world.marker.id

        later = run(ledger.projection(DB_NAME, StateSnapshotQuery(axis_id=world.axis.id, tick=25)))
        assert later[0].state == {"stats": {"power": 7}}

        assert run(ledger.projection(DB_NAME, StateSnapshotQuery(axis_id=world.axis.id, tick=0))) == []

    def test_snapshot_unknown_axis(self, run, ledger, world):
        with pytest.raises(LookupError, match="axis not found"):
            run(ledger.snapshot(DB_NAME, StateSnapshotQuery(axis_id="missing", tick=1)))

    def test_history_replays_active_rows(self, run, ledger, world, timeline):
        query = StateHistoryQuery(
            axis_id=world.axis.id, subject_type="character", subject_id=world.character.id
        )
        history, total = run(ledger.history(DB_NAME, query))
        assert total == 5
        assert [e.effective_tick for e in history.entries] == [1, 5, 10, 15, 20]
        assert history.entries[2].state_after == {"title": "knight", "stats": {"power": 3}}
        assert history.final_state == {"stats": {"power": 7}}

    def test_history_limit_and_any_status(self, run, ledger, world, timeline):
        query = StateHistoryQuery(
            axis_id=world.axis.id,
            subject_type="character",
            subject_id=world.character.id,
            status="any",
            limit=4,
        )
        history, total = run(ledger.history(DB_NAME, query))
        assert total == 6
        assert len(history.entries) == 4
        assert history.final_state == {"title": "usurper", "stats": {"power": 3}}

    def test_history_field_filter(self, run, ledger, world, timeline):
        query = StateHistoryQuery(
            axis_id=world.axis.id,
            subject_type="character",
            subject_id=world.character.id,
            field_path="stats.power",
        )
        history, total = run(ledger.history(DB_NAME, query))
        assert total == 2
        assert history.entries[1].old_value == 3

    def test_history_unknown_subject(self, run, ledger, world):
        query = StateHistoryQuery(axis_id=world.axis.id, subject_type="character", subject_id="missing")
        with pytest.raises(LookupError, match="subject not found"):
            run(ledger.history(DB_NAME, query))

    def test_diff_between_ticks(self, run, ledger, world, timeline):
        query = StateDiffQuery(
            axis_id=world.axis.id,
            subject_type="character",
            subject_id=world.character.id,
            from_tick=10,
            to_tick=25,
        )
        diff = run(ledger.diff(DB_NAME, query))
        assert diff.added == []
        assert [(e.field_path, e.from_value) for e in diff.removed] == [("title", "knight")]
        assert [(e.field_path, e.from_value, e.to_value) for e in diff.updated] == [("stats.power", 3, 7)]
        assert diff.to_state == {"stats": {"power": 7}}
