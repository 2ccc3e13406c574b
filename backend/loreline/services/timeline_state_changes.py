"""State-change ledger and the temporal queries built on it."""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import aiosqlite

from loreline.database.db import DatabaseRegistry
from loreline.logging import get_logger
from loreline.models import (
    ProjectedSubject,
    StateChangeStatus,
    StateDiff,
    StateDiffQuery,
    StateHistory,
    StateHistoryQuery,
    StateSnapshotQuery,
    TimelineStateChange,
    TimelineStateChangeInput,
    TimelineStateChangeListQuery,
)
from loreline.services import reference_gateway as gateway
from loreline.services import temporal_engine as engine
from loreline.services.graph_nodes import detach, link, unlink_incoming, unlink_outgoing
from loreline.services.list_filters import ListFilter, ListSource, build_count_query, build_page_query

logger = get_logger("services.timeline_state_changes")

CAUSES_CHANGE = "CAUSES_CHANGE"
APPLIES_TO = "APPLIES_TO"

STATE_CHANGE_SOURCE = ListSource(
    relation="timeline_state_changes",
    order_by="effective_tick ASC, created_at DESC",
    search_columns=(
        ("field_path", 3),
        ("subject_id", 2),
        ("change_type", 1),
        ("detail", 1),
        ("notes", 1),
        ("new_value", 1),
    ),
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json(raw: str | None, fallback: Any) -> Any:
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def _row_to_state_change(row: dict) -> TimelineStateChange:
    return TimelineStateChange(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row.get("era_id"),
        segment_id=row.get("segment_id"),
        marker_id=row.get("marker_id"),
        event_id=row.get("event_id"),
        subject_type=row["subject_type"],
        subject_id=row["subject_id"],
        field_path=row["field_path"],
        change_type=row["change_type"],
        old_value=row.get("old_value"),
        new_value=row.get("new_value"),
        effective_tick=row["effective_tick"],
        detail=row.get("detail"),
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def _fetch_state_change(db: aiosqlite.Connection, change_id: str) -> TimelineStateChange | None:
    cursor = await db.execute("SELECT * FROM timeline_state_changes WHERE id = ?", (change_id,))
    row = await cursor.fetchone()
    return _row_to_state_change(dict(row)) if row else None


async def _select(
    db: aiosqlite.Connection,
    list_filter: ListFilter,
    suffix: str = "",
    extra: tuple = (),
) -> list[TimelineStateChange]:
    cursor = await db.execute(
        f"SELECT * FROM timeline_state_changes{list_filter.where_clause()}{suffix}",
        [*list_filter.params, *extra],
    )
    return [_row_to_state_change(dict(r)) for r in await cursor.fetchall()]


class TimelineStateChangeService:
    """Validated writes to the ledger plus snapshot, projection, history and diff reads."""

    def __init__(self, databases: DatabaseRegistry):
        self.databases = databases

    async def _get_db(self, db_name: str) -> aiosqlite.Connection:
        return await self.databases.connect(db_name)

    async def _resolve_references(
        self,
        db: aiosqlite.Connection,
        data: TimelineStateChangeInput,
    ) -> dict[str, Any]:
        """
        Validate every reference of a ledger write and fill in marker-derived ids.

        :param db: Open connection
        :type db: aiosqlite.Connection
        :param data: Incoming payload
        :type data: TimelineStateChangeInput
        :return: Column values ready to persist
        :rtype: dict[str, Any]
        :raises LookupError: A referenced axis, marker, event or subject is missing
        :raises ValueError: The marker sits elsewhere than the given axis, era or segment
        """
        if not await gateway.axis_exists(db, data.axis_id):
            raise LookupError("axis not found")

        era_id = data.era_id
        segment_id = data.segment_id
        if data.marker_id:
            marker = await gateway.get_marker_refs(db, data.marker_id)
            if not marker:
                raise LookupError("marker not found")
            if marker.axis_id != data.axis_id:
                raise ValueError("marker axisId does not match axisId")
            if era_id and era_id != marker.era_id:
                raise ValueError("marker eraId does not match eraId")
            if segment_id and segment_id != marker.segment_id:
                raise ValueError("marker segmentId does not match segmentId")
            era_id = era_id or marker.era_id
            segment_id = segment_id or marker.segment_id

        if data.event_id and not await gateway.event_exists(db, data.event_id):
            raise LookupError("event not found")
        if not await gateway.subject_exists(db, data.subject_type, data.subject_id):
            raise LookupError("subject not found")

        return {
            "axis_id": data.axis_id,
            "era_id": era_id,
            "segment_id": segment_id,
            "marker_id": data.marker_id,
            "event_id": data.event_id,
            "subject_type": data.subject_type.value,
            "subject_id": data.subject_id,
            "field_path": data.field_path,
            "change_type": data.change_type,
            "old_value": data.old_value,
            "new_value": data.new_value,
            "effective_tick": data.effective_tick,
            "detail": data.detail,
            "notes": data.notes,
            "tags": json.dumps(data.tags),
            "status": data.status.value,
        }

    async def _relink(self, db: aiosqlite.Connection, change_id: str, fields: dict[str, Any]) -> None:
        label = gateway.STATE_CHANGE_LABEL
        await unlink_incoming(db, CAUSES_CHANGE, gateway.MARKER_LABEL, label, change_id)
        if fields["marker_id"]:
            await link(db, gateway.MARKER_LABEL, fields["marker_id"], CAUSES_CHANGE, label, change_id)
        await unlink_incoming(db, CAUSES_CHANGE, gateway.EVENT_LABEL, label, change_id)
        if fields["event_id"]:
            await link(db, gateway.EVENT_LABEL, fields["event_id"], CAUSES_CHANGE, label, change_id)
        await unlink_outgoing(db, APPLIES_TO, label, change_id)
        await link(
            db,
            label,
            change_id,
            APPLIES_TO,
            gateway.subject_label(fields["subject_type"]),
            fields["subject_id"],
        )

    async def create_state_change(self, db_name: str, data: TimelineStateChangeInput) -> TimelineStateChange:
        now = _now()
        change_id = str(uuid4())
        db = await self._get_db(db_name)
        try:
            fields = await self._resolve_references(db, data)
            record = {"id": change_id, **fields, "created_at": now, "updated_at": now}
            columns = ", ".join(record)
            placeholders = ", ".join("?" for _ in record)
            await db.execute(
                f"INSERT INTO timeline_state_changes ({columns}) VALUES ({placeholders})",
                list(record.values()),
            )
            await self._relink(db, change_id, fields)
            await db.commit()
            change = await _fetch_state_change(db, change_id)
        finally:
            await db.close()
        logger.info(
            f"Recorded {change.change_type} {change.subject_type.value}:{change.subject_id[:8]} "
            f"{change.field_path} @ {change.effective_tick}"
        )
        return change

    async def get_state_change(self, db_name: str, change_id: str) -> TimelineStateChange | None:
        db = await self._get_db(db_name)
        try:
            return await _fetch_state_change(db, change_id)
        finally:
            await db.close()

    async def update_state_change(
        self,
        db_name: str,
        change_id: str,
        data: TimelineStateChangeInput,
    ) -> TimelineStateChange | None:
        db = await self._get_db(db_name)
        try:
            if not await _fetch_state_change(db, change_id):
                return None
            fields = await self._resolve_references(db, data)
            changes = {**fields, "updated_at": _now()}
            set_clause = ", ".join(f"{k} = ?" for k in changes)
            await db.execute(
                f"UPDATE timeline_state_changes SET {set_clause} WHERE id = ?",
                list(changes.values()) + [change_id],
            )
            await self._relink(db, change_id, fields)
            await db.commit()
            return await _fetch_state_change(db, change_id)
        finally:
            await db.close()

    async def delete_state_change(self, db_name: str, change_id: str) -> bool:
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute("DELETE FROM timeline_state_changes WHERE id = ?", (change_id,))
            if cursor.rowcount == 0:
                return False
            await detach(db, gateway.STATE_CHANGE_LABEL, [change_id])
            await db.commit()
        finally:
            await db.close()
        return True

    async def list_state_changes(
        self,
        db_name: str,
        query: TimelineStateChangeListQuery,
    ) -> tuple[list[TimelineStateChange], int]:
        list_filter = (
            ListFilter()
            .equals("axis_id", query.axis_id)
            .equals("era_id", query.era_id)
            .equals("segment_id", query.segment_id)
            .equals("marker_id", query.marker_id)
            .equals("event_id", query.event_id)
            .equals("subject_type", query.subject_type)
            .equals("subject_id", query.subject_id)
            .contains("field_path", query.field_path)
            .equals("status", query.status)
            .at_least("effective_tick", query.tick_from)
            .at_most("effective_tick", query.tick_to)
        )
        page_sql, page_params = build_page_query(
            STATE_CHANGE_SOURCE, list_filter, query.q, query.limit, query.offset
        )
        count_sql, count_params = build_count_query(STATE_CHANGE_SOURCE, list_filter, query.q)
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(page_sql, page_params)
            rows = await cursor.fetchall()
            cursor = await db.execute(count_sql, count_params)
            total = (await cursor.fetchone())["total"]
        finally:
            await db.close()
        return [_row_to_state_change(dict(r)) for r in rows], total

    # --- Temporal reads ---

    async def _require_axis(self, db: aiosqlite.Connection, axis_id: str) -> None:
        if not await gateway.axis_exists(db, axis_id):
            raise LookupError("axis not found")

    async def _require_subject(self, db: aiosqlite.Connection, subject_type: str, subject_id: str) -> None:
        if not await gateway.subject_exists(db, subject_type, subject_id):
            raise LookupError("subject not found")

    async def _active_rows_until(
        self,
        db: aiosqlite.Connection,
        axis_id: str,
        tick: float,
        subject_type: str | None = None,
        subject_id: str | None = None,
    ) -> list[TimelineStateChange]:
        list_filter = (
            ListFilter()
            .equals("axis_id", axis_id)
            .equals("status", StateChangeStatus.ACTIVE)
            .at_most("effective_tick", tick)
            .equals("subject_type", subject_type)
            .equals("subject_id", subject_id)
        )
        return await _select(db, list_filter)

    async def snapshot(self, db_name: str, query: StateSnapshotQuery) -> list[TimelineStateChange]:
        db = await self._get_db(db_name)
        try:
            await self._require_axis(db, query.axis_id)
            rows = await self._active_rows_until(
                db, query.axis_id, query.tick, query.subject_type, query.subject_id
            )
        finally:
            await db.close()
        return engine.select_snapshot(rows, query.tick)

    async def projection(self, db_name: str, query: StateSnapshotQuery) -> list[ProjectedSubject]:
        return engine.build_projection(await self.snapshot(db_name, query))

    async def history(self, db_name: str, query: StateHistoryQuery) -> tuple[StateHistory, int]:
        """
        Replay one subject's ledger rows on an axis in effective-tick order.

        :param db_name: Logical database name
        :type db_name: str
        :param query: Subject, optional field and tick window, status and limit
        :type query: StateHistoryQuery
        :return: The replay (at most ``limit`` steps) and the total matching row count
        :rtype: tuple[StateHistory, int]
        """
        list_filter = (
            ListFilter()
            .equals("axis_id", query.axis_id)
            .equals("subject_type", query.subject_type)
            .equals("subject_id", query.subject_id)
            .equals("field_path", query.field_path)
            .equals("status", None if query.status == "any" else query.status)
            .at_least("effective_tick", query.tick_from)
            .at_most("effective_tick", query.tick_to)
        )
        db = await self._get_db(db_name)
        try:
            await self._require_axis(db, query.axis_id)
            await self._require_subject(db, query.subject_type, query.subject_id)
            rows = await _select(
                db,
                list_filter,
                f" ORDER BY {STATE_CHANGE_SOURCE.order_by} LIMIT ?",
                (query.limit,),
            )
            cursor = await db.execute(
                f"SELECT COUNT(*) AS total FROM timeline_state_changes{list_filter.where_clause()}",
                list_filter.params,
            )
            total = (await cursor.fetchone())["total"]
        finally:
            await db.close()
        return engine.replay_history(rows), total

    async def diff(self, db_name: str, query: StateDiffQuery) -> StateDiff:
        db = await self._get_db(db_name)
        try:
            await self._require_axis(db, query.axis_id)
            await self._require_subject(db, query.subject_type, query.subject_id)
            rows = await self._active_rows_until(
                db, query.axis_id, query.to_tick, query.subject_type, query.subject_id
            )
        finally:
            await db.close()
        subject_type = query.subject_type.value
        return engine.diff_states(
            subject_type,
            query.subject_id,
            query.from_tick,
            query.to_tick,
            engine.project_subject(rows, query.from_tick, subject_type, query.subject_id),
            engine.project_subject(rows, query.to_tick, subject_type, query.subject_id),
        )
