"""Timeline hierarchy store: axes, eras, segments and markers."""

import json
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar
from uuid import uuid4

import aiosqlite

from loreline.database.db import DatabaseRegistry
from loreline.logging import get_logger
from loreline.models import (
    AxisType,
    TimelineAxis,
    TimelineAxisInput,
    TimelineAxisListQuery,
    TimelineEra,
    TimelineEraInput,
    TimelineEraListQuery,
    TimelineMarker,
    TimelineMarkerInput,
    TimelineMarkerListQuery,
    TimelineSegment,
    TimelineSegmentInput,
    TimelineSegmentListQuery,
    PageQuery,
    SubjectType,
)
from loreline.services import reference_gateway as gateway
from loreline.services.errors import ConflictError
from loreline.services.graph_nodes import detach
from loreline.services.list_filters import ListFilter, ListSource, build_count_query, build_page_query

logger = get_logger("services.timeline_structure")

T = TypeVar("T")

AXIS_SOURCE = ListSource(
    relation="timeline_axes",
    order_by="COALESCE(sort_order, 0) ASC, created_at DESC",
    search_columns=(("name", 3), ("code", 2), ("description", 1), ("notes", 1)),
)
ERA_SOURCE = ListSource(
    relation="timeline_eras",
    order_by="axis_id ASC, COALESCE(order_index, 0) ASC, created_at DESC",
    search_columns=(("name", 3), ("code", 2), ("summary", 1), ("description", 1)),
)
SEGMENT_SOURCE = ListSource(
    relation="timeline_segment_refs",
    order_by="axis_id ASC, era_id ASC, COALESCE(order_index, 0) ASC, created_at DESC",
    search_columns=(("name", 3), ("code", 2), ("summary", 1), ("description", 1)),
)
MARKER_SOURCE = ListSource(
    relation="timeline_marker_refs",
    order_by="axis_id ASC, era_id ASC, segment_id ASC, tick ASC, created_at DESC",
    search_columns=(("label", 3), ("marker_type", 1), ("description", 1)),
)

AXIS_LABEL = gateway.SUBJECT_LOOKUPS[SubjectType.TIMELINE_AXIS].label
ERA_LABEL = gateway.SUBJECT_LOOKUPS[SubjectType.TIMELINE_ERA].label
SEGMENT_LABEL = gateway.SUBJECT_LOOKUPS[SubjectType.TIMELINE_SEGMENT].label
MARKER_LABEL = gateway.MARKER_LABEL


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json(raw: str | None, fallback: Any) -> Any:
    if not raw:
        return fallback
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return fallback


def _row_to_axis(row: dict) -> TimelineAxis:
    return TimelineAxis(
        id=row["id"],
        name=row["name"],
        code=row.get("code"),
        axis_type=row["axis_type"],
        description=row.get("description"),
        parent_axis_id=row.get("parent_axis_id"),
        origin_segment_id=row.get("origin_segment_id"),
        origin_offset_years=row.get("origin_offset_years"),
        policy=row.get("policy"),
        sort_order=row.get("sort_order"),
        start_tick=row.get("start_tick"),
        end_tick=row.get("end_tick"),
        status=row["status"],
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_era(row: dict) -> TimelineEra:
    return TimelineEra(
        id=row["id"],
        axis_id=row["axis_id"],
        name=row["name"],
        code=row.get("code"),
        summary=row.get("summary"),
        description=row.get("description"),
        order=row.get("order_index"),
        start_tick=row.get("start_tick"),
        end_tick=row.get("end_tick"),
        status=row["status"],
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_segment(row: dict) -> TimelineSegment:
    return TimelineSegment(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row["era_id"],
        name=row["name"],
        duration_years=row["duration_years"],
        code=row.get("code"),
        summary=row.get("summary"),
        description=row.get("description"),
        order=row.get("order_index"),
        start_tick=row.get("start_tick"),
        end_tick=row.get("end_tick"),
        status=row["status"],
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_marker(row: dict) -> TimelineMarker:
    return TimelineMarker(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row["era_id"],
        segment_id=row["segment_id"],
        label=row["label"],
        tick=row["tick"],
        marker_type=row.get("marker_type"),
        description=row.get("description"),
        event_ref_id=row.get("event_ref_id"),
        status=row["status"],
        notes=row.get("notes"),
        tags=_load_json(row.get("tags"), []),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _axis_fields(data: TimelineAxisInput) -> dict[str, Any]:
    return {
        "name": data.name,
        "code": data.code,
        "axis_type": data.axis_type.value,
        "description": data.description,
        "parent_axis_id": data.parent_axis_id,
        "origin_segment_id": data.origin_segment_id,
        "origin_offset_years": data.origin_offset_years,
        "policy": data.policy,
        "sort_order": data.sort_order,
        "start_tick": data.start_tick,
        "end_tick": data.end_tick,
        "status": data.status.value,
        "notes": data.notes,
        "tags": json.dumps(data.tags),
    }


def _era_fields(data: TimelineEraInput) -> dict[str, Any]:
    return {
        "axis_id": data.axis_id,
        "name": data.name,
        "code": data.code,
        "summary": data.summary,
        "description": data.description,
        "order_index": data.order,
        "start_tick": data.start_tick,
        "end_tick": data.end_tick,
        "status": data.status.value,
        "notes": data.notes,
        "tags": json.dumps(data.tags),
    }


def _segment_fields(data: TimelineSegmentInput) -> dict[str, Any]:
    return {
        "era_id": data.era_id,
        "name": data.name,
        "duration_years": data.duration_years,
        "code": data.code,
        "summary": data.summary,
        "description": data.description,
        "order_index": data.order,
        "start_tick": data.start_tick,
        "end_tick": data.end_tick,
        "status": data.status.value,
        "notes": data.notes,
        "tags": json.dumps(data.tags),
    }


def _marker_fields(data: TimelineMarkerInput) -> dict[str, Any]:
    return {
        "segment_id": data.segment_id,
        "label": data.label,
        "tick": data.tick,
        "marker_type": data.marker_type,
        "description": data.description,
        "event_ref_id": data.event_ref_id,
        "status": data.status.value,
        "notes": data.notes,
        "tags": json.dumps(data.tags),
    }


async def _insert(db: aiosqlite.Connection, table: str, fields: dict[str, Any]) -> None:
    columns = ", ".join(fields)
    placeholders = ", ".join("?" for _ in fields)
    await db.execute(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
        list(fields.values()),
    )


async def _update(db: aiosqlite.Connection, table: str, record_id: str, fields: dict[str, Any]) -> None:
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    await db.execute(
        f"UPDATE {table} SET {set_clause} WHERE id = ?",
        list(fields.values()) + [record_id],
    )


async def _fetch_one(
    db: aiosqlite.Connection,
    relation: str,
    record_id: str,
    row_fn: Callable[[dict], T],
) -> T | None:
    cursor = await db.execute(f"SELECT * FROM {relation} WHERE id = ?", (record_id,))
    row = await cursor.fetchone()
    return row_fn(dict(row)) if row else None


async def _ids(db: aiosqlite.Connection, sql: str, params: tuple) -> list[str]:
    cursor = await db.execute(sql, params)
    return [row["id"] for row in await cursor.fetchall()]


class TimelineStructureService:
    """Validated CRUD over the axis -> era -> segment -> marker hierarchy."""

    def __init__(self, databases: DatabaseRegistry):
        self.databases = databases

    async def _get_db(self, db_name: str) -> aiosqlite.Connection:
        return await self.databases.connect(db_name)

    async def _get(self, db_name: str, relation: str, record_id: str, row_fn: Callable[[dict], T]) -> T | None:
        db = await self._get_db(db_name)
        try:
            return await _fetch_one(db, relation, record_id, row_fn)
        finally:
            await db.close()

    async def _list(
        self,
        db_name: str,
        source: ListSource,
        list_filter: ListFilter,
        query: PageQuery,
        row_fn: Callable[[dict], T],
    ) -> tuple[list[T], int]:
        page_sql, page_params = build_page_query(source, list_filter, query.q, query.limit, query.offset)
        count_sql, count_params = build_count_query(source, list_filter, query.q)
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(page_sql, page_params)
            rows = await cursor.fetchall()
            cursor = await db.execute(count_sql, count_params)
            total = (await cursor.fetchone())["total"]
        finally:
            await db.close()
        return [row_fn(dict(r)) for r in rows], total

    async def _detach_hierarchy(self, db: aiosqlite.Connection, column: str, value: str) -> None:
        """Drop links of every era, segment and marker under ``column = value``."""
        markers = await _ids(db, f"SELECT id FROM timeline_marker_refs WHERE {column} = ?", (value,))
        await detach(db, MARKER_LABEL, markers)
        if column in ("axis_id", "era_id"):
            segments = await _ids(db, f"SELECT id FROM timeline_segment_refs WHERE {column} = ?", (value,))
            await detach(db, SEGMENT_LABEL, segments)
        if column == "axis_id":
            eras = await _ids(db, "SELECT id FROM timeline_eras WHERE axis_id = ?", (value,))
            await detach(db, ERA_LABEL, eras)

    # --- Axes ---

    async def _check_axis_rules(
        self,
        db: aiosqlite.Connection,
        data: TimelineAxisInput,
        axis_id: str | None,
    ) -> None:
        if data.axis_type == AxisType.MAIN:
            sql = "SELECT COUNT(*) AS total FROM timeline_axes WHERE axis_type = ?"
            params: list = [AxisType.MAIN.value]
            if axis_id:
                sql += " AND id != ?"
                params.append(axis_id)
            cursor = await db.execute(sql, params)
            if (await cursor.fetchone())["total"] > 0:
                raise ConflictError("only one main axis is allowed")

        needs_parent = data.axis_type in (AxisType.BRANCH, AxisType.LOOP)
        if needs_parent and not data.parent_axis_id:
            raise ValueError("parent axis is required for branch and loop axes")
        if not needs_parent and data.parent_axis_id:
            raise ValueError("only branch and loop axes can have parent axis")
        if data.axis_type == AxisType.BRANCH and not data.origin_segment_id:
            raise ValueError("origin segment is required for branch axis")
        if data.axis_type != AxisType.BRANCH and (
            data.origin_segment_id or data.origin_offset_years is not None
        ):
            raise ValueError("only branch axis can set origin segment")

        if data.parent_axis_id:
            if axis_id and data.parent_axis_id == axis_id:
                raise ValueError("parentAxisId must be different from id")
            if not await gateway.axis_exists(db, data.parent_axis_id):
                raise LookupError("parent axis not found")
        if data.origin_segment_id:
            origin = await gateway.get_segment_refs(db, data.origin_segment_id)
            if not origin:
                raise LookupError("origin segment not found")
            if origin.axis_id != data.parent_axis_id:
                raise ValueError("origin segment must belong to parent axis")

    async def create_axis(self, db_name: str, data: TimelineAxisInput) -> TimelineAxis:
        now = _now()
        axis_id = str(uuid4())
        db = await self._get_db(db_name)
        try:
            await self._check_axis_rules(db, data, None)
            await _insert(db, "timeline_axes", {
                "id": axis_id,
                **_axis_fields(data),
                "created_at": now,
                "updated_at": now,
            })
            await db.commit()
            axis = await _fetch_one(db, "timeline_axes", axis_id, _row_to_axis)
        finally:
            await db.close()
        logger.info(f"Created {axis.axis_type.value} axis: {axis.name} ({axis.id[:8]})")
        return axis

    async def get_axis(self, db_name: str, axis_id: str) -> TimelineAxis | None:
        return await self._get(db_name, "timeline_axes", axis_id, _row_to_axis)

    async def list_axes(self, db_name: str, query: TimelineAxisListQuery) -> tuple[list[TimelineAxis], int]:
        list_filter = (
            ListFilter()
            .contains("name", query.name)
            .contains("code", query.code)
            .equals("axis_type", query.axis_type)
            .equals("status", query.status)
            .equals("parent_axis_id", query.parent_axis_id)
        )
        return await self._list(db_name, AXIS_SOURCE, list_filter, query, _row_to_axis)

    async def update_axis(self, db_name: str, axis_id: str, data: TimelineAxisInput) -> TimelineAxis | None:
        db = await self._get_db(db_name)
        try:
            if not await gateway.axis_exists(db, axis_id):
                return None
            await self._check_axis_rules(db, data, axis_id)
            await _update(db, "timeline_axes", axis_id, {**_axis_fields(data), "updated_at": _now()})
            await db.commit()
            return await _fetch_one(db, "timeline_axes", axis_id, _row_to_axis)
        finally:
            await db.close()

    async def delete_axis(self, db_name: str, axis_id: str) -> bool:
        """
        Delete an axis with its eras, segments and markers.

        Child axes are detached: their parent and origin fields are cleared.

        :param db_name: Logical database name
        :type db_name: str
        :param axis_id: Axis to delete
        :type axis_id: str
        :return: False when the axis does not exist
        :rtype: bool
        """
        db = await self._get_db(db_name)
        try:
            if not await gateway.axis_exists(db, axis_id):
                return False
            await db.execute(
                """UPDATE timeline_axes
                   SET parent_axis_id = NULL, origin_segment_id = NULL, origin_offset_years = NULL, updated_at = ?
                   WHERE parent_axis_id = ?""",
                (_now(), axis_id),
            )
            await self._detach_hierarchy(db, "axis_id", axis_id)
            await detach(db, AXIS_LABEL, [axis_id])
            await db.execute("DELETE FROM timeline_axes WHERE id = ?", (axis_id,))
            await db.commit()
        finally:
            await db.close()
        logger.info(f"Deleted axis {axis_id[:8]} and its eras, segments and markers")
        return True

    # --- Eras ---

    async def create_era(self, db_name: str, data: TimelineEraInput) -> TimelineEra:
        now = _now()
        era_id = str(uuid4())
        db = await self._get_db(db_name)
        try:
            if not await gateway.axis_exists(db, data.axis_id):
                raise LookupError("axis not found")
            await _insert(db, "timeline_eras", {
                "id": era_id,
                **_era_fields(data),
                "created_at": now,
                "updated_at": now,
            })
            await db.commit()
            return await _fetch_one(db, "timeline_eras", era_id, _row_to_era)
        finally:
            await db.close()

    async def get_era(self, db_name: str, era_id: str) -> TimelineEra | None:
        return await self._get(db_name, "timeline_eras", era_id, _row_to_era)

    async def list_eras(self, db_name: str, query: TimelineEraListQuery) -> tuple[list[TimelineEra], int]:
        list_filter = (
            ListFilter()
            .contains("name", query.name)
            .contains("code", query.code)
            .equals("axis_id", query.axis_id)
            .equals("status", query.status)
        )
        return await self._list(db_name, ERA_SOURCE, list_filter, query, _row_to_era)

    async def update_era(self, db_name: str, era_id: str, data: TimelineEraInput) -> TimelineEra | None:
        db = await self._get_db(db_name)
        try:
            current_axis_id = await gateway.era_axis_id(db, era_id)
            if current_axis_id is None:
                return None
            if not await gateway.axis_exists(db, data.axis_id):
                raise LookupError("axis not found")
            if data.axis_id != current_axis_id:
                raise ValueError("axisId of an era cannot be changed")
            await _update(db, "timeline_eras", era_id, {**_era_fields(data), "updated_at": _now()})
            await db.commit()
            return await _fetch_one(db, "timeline_eras", era_id, _row_to_era)
        finally:
            await db.close()

    async def delete_era(self, db_name: str, era_id: str) -> bool:
        db = await self._get_db(db_name)
        try:
            if await gateway.era_axis_id(db, era_id) is None:
                return False
            await self._detach_hierarchy(db, "era_id", era_id)
            await detach(db, ERA_LABEL, [era_id])
            await db.execute("DELETE FROM timeline_eras WHERE id = ?", (era_id,))
            await db.commit()
        finally:
            await db.close()
        logger.info(f"Deleted era {era_id[:8]} and its segments and markers")
        return True

    # --- Segments ---

    async def create_segment(self, db_name: str, data: TimelineSegmentInput) -> TimelineSegment:
        now = _now()
        segment_id = str(uuid4())
        db = await self._get_db(db_name)
        try:
            if await gateway.era_axis_id(db, data.era_id) is None:
                raise LookupError("era not found")
            await _insert(db, "timeline_segments", {
                "id": segment_id,
                **_segment_fields(data),
                "created_at": now,
                "updated_at": now,
            })
            await db.commit()
            return await _fetch_one(db, "timeline_segment_refs", segment_id, _row_to_segment)
        finally:
            await db.close()

    async def get_segment(self, db_name: str, segment_id: str) -> TimelineSegment | None:
        return await self._get(db_name, "timeline_segment_refs", segment_id, _row_to_segment)

    async def list_segments(
        self,
        db_name: str,
        query: TimelineSegmentListQuery,
    ) -> tuple[list[TimelineSegment], int]:
        list_filter = (
            ListFilter()
            .contains("name", query.name)
            .contains("code", query.code)
            .equals("axis_id", query.axis_id)
            .equals("era_id", query.era_id)
            .equals("status", query.status)
        )
        return await self._list(db_name, SEGMENT_SOURCE, list_filter, query, _row_to_segment)

    async def update_segment(
        self,
        db_name: str,
        segment_id: str,
        data: TimelineSegmentInput,
    ) -> TimelineSegment | None:
        db = await self._get_db(db_name)
        try:
            current = await gateway.get_segment_refs(db, segment_id)
            if not current:
                return None
            axis_id = await gateway.era_axis_id(db, data.era_id)
            if axis_id is None:
                raise LookupError("era not found")
            if axis_id != current.axis_id:
                cursor = await db.execute(
                    "SELECT 1 FROM timeline_axes WHERE origin_segment_id = ? AND parent_axis_id != ?",
                    (segment_id, axis_id),
                )
                if await cursor.fetchone():
                    raise ValueError("origin segment of a branch axis cannot move to another axis")
            await _update(db, "timeline_segments", segment_id, {**_segment_fields(data), "updated_at": _now()})
            await db.commit()
            return await _fetch_one(db, "timeline_segment_refs", segment_id, _row_to_segment)
        finally:
            await db.close()

    async def delete_segment(self, db_name: str, segment_id: str) -> bool:
        db = await self._get_db(db_name)
        try:
            if not await gateway.get_segment_refs(db, segment_id):
                return False
            await self._detach_hierarchy(db, "segment_id", segment_id)
            await detach(db, SEGMENT_LABEL, [segment_id])
            await db.execute("DELETE FROM timeline_segments WHERE id = ?", (segment_id,))
            await db.commit()
        finally:
            await db.close()
        logger.info(f"Deleted segment {segment_id[:8]} and its markers")
        return True

    # --- Markers ---

    async def _check_event_ref(self, db: aiosqlite.Connection, event_id: str | None, marker_id: str) -> None:
        """Validate an event reference and release it from any other marker."""
        if not event_id:
            return
        if not await gateway.event_exists(db, event_id):
            raise LookupError("event not found")
        await db.execute(
            "UPDATE timeline_markers SET event_ref_id = NULL, updated_at = ? WHERE event_ref_id = ? AND id != ?",
            (_now(), event_id, marker_id),
        )

    async def create_marker(self, db_name: str, data: TimelineMarkerInput) -> TimelineMarker:
        now = _now()
        marker_id = str(uuid4())
        db = await self._get_db(db_name)
        try:
            if not await gateway.get_segment_refs(db, data.segment_id):
                raise LookupError("segment not found")
            await self._check_event_ref(db, data.event_ref_id, marker_id)
            await _insert(db, "timeline_markers", {
                "id": marker_id,
                **_marker_fields(data),
                "created_at": now,
                "updated_at": now,
            })
            await db.commit()
            return await _fetch_one(db, "timeline_marker_refs", marker_id, _row_to_marker)
        finally:
            await db.close()

    async def get_marker(self, db_name: str, marker_id: str) -> TimelineMarker | None:
        return await self._get(db_name, "timeline_marker_refs", marker_id, _row_to_marker)

    async def list_markers(
        self,
        db_name: str,
        query: TimelineMarkerListQuery,
    ) -> tuple[list[TimelineMarker], int]:
        list_filter = (
            ListFilter()
            .contains("label", query.label)
            .equals("marker_type", query.marker_type)
            .equals("axis_id", query.axis_id)
            .equals("era_id", query.era_id)
            .equals("segment_id", query.segment_id)
            .equals("status", query.status)
            .at_least("tick", query.tick_from)
            .at_most("tick", query.tick_to)
        )
        return await self._list(db_name, MARKER_SOURCE, list_filter, query, _row_to_marker)

    async def update_marker(
        self,
        db_name: str,
        marker_id: str,
        data: TimelineMarkerInput,
    ) -> TimelineMarker | None:
        db = await self._get_db(db_name)
        try:
            if not await gateway.get_marker_refs(db, marker_id):
                return None
            if not await gateway.get_segment_refs(db, data.segment_id):
                raise LookupError("segment not found")
            await self._check_event_ref(db, data.event_ref_id, marker_id)
            await _update(db, "timeline_markers", marker_id, {**_marker_fields(data), "updated_at": _now()})
            await db.commit()
            return await _fetch_one(db, "timeline_marker_refs", marker_id, _row_to_marker)
        finally:
            await db.close()

    async def delete_marker(self, db_name: str, marker_id: str) -> bool:
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute("DELETE FROM timeline_markers WHERE id = ?", (marker_id,))
            if cursor.rowcount == 0:
                return False
            await detach(db, MARKER_LABEL, [marker_id])
            await db.commit()
        finally:
            await db.close()
        return True

    async def link_event_to_marker(self, db_name: str, marker_id: str, event_id: str) -> TimelineMarker | None:
        """Point a marker at an event, releasing the event from any other marker."""
        db = await self._get_db(db_name)
        try:
            if not await gateway.get_marker_refs(db, marker_id):
                return None
            await self._check_event_ref(db, event_id, marker_id)
            await db.execute(
                "UPDATE timeline_markers SET event_ref_id = ?, updated_at = ? WHERE id = ?",
                (event_id, _now(), marker_id),
            )
            await db.commit()
            return await _fetch_one(db, "timeline_marker_refs", marker_id, _row_to_marker)
        finally:
            await db.close()

    async def unlink_event_markers(self, db_name: str, event_id: str) -> int:
        """Clear an event reference from every marker. Returns how many markers changed."""
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(
                "UPDATE timeline_markers SET event_ref_id = NULL, updated_at = ? WHERE event_ref_id = ?",
                (_now(), event_id),
            )
            await db.commit()
            return cursor.rowcount
        finally:
            await db.close()
