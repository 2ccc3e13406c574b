"""Pure reconstruction of subject state from state-change ledger rows.

Nothing here touches storage: callers fetch rows and hand them over.
"""

import copy
import json
from typing import Any, Iterable

from loreline.models import (
    REMOVAL_CHANGE_TYPES,
    ProjectedSubject,
    ProjectionField,
    StateChangeStatus,
    StateDiff,
    StateDiffEntry,
    StateHistory,
    StateHistoryEntry,
    TimelineStateChange,
    normalize_type,
)
from loreline.services.field_path import flatten_state, remove_by_path, set_by_path

SubjectKey = tuple[str, str]
FieldKey = tuple[str, str, str]


def is_removal(change_type: str | None) -> bool:
    return normalize_type(change_type or "") in REMOVAL_CHANGE_TYPES


def parse_serialized_value(raw: str | None) -> Any:
    """Decode a stored value as JSON, falling back to the raw string."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw


def _subject_key(change: TimelineStateChange) -> SubjectKey:
    return (change.subject_type.value, change.subject_id)


def _field_key(change: TimelineStateChange) -> FieldKey:
    return (change.subject_type.value, change.subject_id, change.field_path)


def select_snapshot(
    changes: Iterable[TimelineStateChange],
    tick: float,
) -> list[TimelineStateChange]:
    """
    Keep the latest active row per (subject type, subject id, field path) as of ``tick``.

    Latest means greatest effective tick, ties broken by greatest update time.
    The result is ordered by subject type, subject id and field path.

    :param changes: Ledger rows of one axis, in any order
    :type changes: Iterable[TimelineStateChange]
    :param tick: Inclusive upper bound on effective tick
    :type tick: float
    :return: One winning row per field
    :rtype: list[TimelineStateChange]
    """
    winners: dict[FieldKey, TimelineStateChange] = {}
    for change in changes:
        if change.status != StateChangeStatus.ACTIVE or change.effective_tick > tick:
            continue
        key = _field_key(change)
        current = winners.get(key)
        if current is None or (change.effective_tick, change.updated_at) > (
            current.effective_tick,
            current.updated_at,
        ):
            winners[key] = change
    return [winners[key] for key in sorted(winners)]


def build_projection(snapshot: Iterable[TimelineStateChange]) -> list[ProjectedSubject]:
    """
    Fold snapshot rows into one nested state per subject.

    Removals contribute a field entry but never a value in ``state``.

    :param snapshot: Output of :func:`select_snapshot`
    :type snapshot: Iterable[TimelineStateChange]
    :return: Subjects in snapshot order
    :rtype: list[ProjectedSubject]
    """
    subjects: dict[SubjectKey, ProjectedSubject] = {}
    for change in snapshot:
        key = _subject_key(change)
        subject = subjects.get(key)
        if subject is None:
            subject = ProjectedSubject(
                subject_type=change.subject_type,
                subject_id=change.subject_id,
                state={},
                fields=[],
            )
            subjects[key] = subject

        field_values: dict[str, Any] = {
            "state_change_id": change.id,
            "field_path": change.field_path,
            "raw_value": change.new_value,
            "change_type": change.change_type,
            "effective_tick": change.effective_tick,
            "marker_id": change.marker_id,
            "event_id": change.event_id,
            "updated_at": change.updated_at,
        }
        if not is_removal(change.change_type):
            value = parse_serialized_value(change.new_value)
            set_by_path(subject.state, change.field_path, value)
            field_values["value"] = value
        subject.fields.append(ProjectionField(**field_values))
    return list(subjects.values())


def project_subject(
    changes: Iterable[TimelineStateChange],
    tick: float,
    subject_type: str,
    subject_id: str,
) -> dict[str, Any]:
    """Projected state of a single subject as of ``tick``; empty when nothing applies."""
    relevant = [
        change for change in changes
        if change.subject_type.value == subject_type and change.subject_id == subject_id
    ]
    for subject in build_projection(select_snapshot(relevant, tick)):
        return subject.state
    return {}


def replay_history(changes: Iterable[TimelineStateChange]) -> StateHistory:
    """
    Apply ledger rows in the given order, recording a deep copy of the state after each.

    :param changes: Rows already ordered for replay
    :type changes: Iterable[TimelineStateChange]
    :return: Per-step entries and the final state
    :rtype: StateHistory
    """
    state: dict[str, Any] = {}
    entries: list[StateHistoryEntry] = []
    for change in changes:
        entry_values: dict[str, Any] = {
            "state_change_id": change.id,
            "effective_tick": change.effective_tick,
            "field_path": change.field_path,
            "change_type": change.change_type,
            "old_value": parse_serialized_value(change.old_value),
            "marker_id": change.marker_id,
            "event_id": change.event_id,
            "updated_at": change.updated_at,
        }
        if is_removal(change.change_type):
            remove_by_path(state, change.field_path)
        else:
            value = parse_serialized_value(change.new_value)
            set_by_path(state, change.field_path, value)
            entry_values["new_value"] = value
        entry_values["state_after"] = copy.deepcopy(state)
        entries.append(StateHistoryEntry(**entry_values))
    return StateHistory(entries=entries, final_state=copy.deepcopy(state))


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def diff_states(
    subject_type: str,
    subject_id: str,
    from_tick: float,
    to_tick: float,
    from_state: dict[str, Any],
    to_state: dict[str, Any],
) -> StateDiff:
    """
    Compare two projected states leaf by leaf.

    A path lands in exactly one of added, removed or updated.
    """
    before = flatten_state(from_state)
    after = flatten_state(to_state)
    added = [
        StateDiffEntry(field_path=path, to_value=after[path])
        for path in sorted(after.keys() - before.keys())
    ]
    removed = [
        StateDiffEntry(field_path=path, from_value=before[path])
        for path in sorted(before.keys() - after.keys())
    ]
    updated = [
        StateDiffEntry(field_path=path, from_value=before[path], to_value=after[path])
        for path in sorted(before.keys() & after.keys())
        if _canonical(before[path]) != _canonical(after[path])
    ]
    return StateDiff(
        subject_type=subject_type,
        subject_id=subject_id,
        from_tick=from_tick,
        to_tick=to_tick,
        added=added,
        removed=removed,
        updated=updated,
        from_state=from_state,
        to_state=to_state,
    )
