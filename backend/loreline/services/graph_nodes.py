"""Domain node storage and the relationship links shared with the timeline."""

import json
from datetime import datetime, timezone
from typing import Iterable
from uuid import uuid4

import aiosqlite

from loreline.database.db import DatabaseRegistry
from loreline.logging import get_logger
from loreline.models import Node, NodeCreate, NodeUpdate, PageQuery, SubjectType
from loreline.services.errors import ConflictError
from loreline.services.list_filters import ListFilter, ListSource, build_count_query, build_page_query
from loreline.services.reference_gateway import SUBJECT_LOOKUPS, SubjectLookup

logger = get_logger("services.graph_nodes")

RESERVED_PROPERTIES = {"id", "name", "createdAt", "updatedAt"}

NODE_SOURCE = ListSource(
    relation="graph_nodes",
    order_by="name COLLATE NOCASE ASC, created_at DESC",
    search_columns=(("name", 3), ("properties", 1)),
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Links ---

async def link(
    db: aiosqlite.Connection,
    from_label: str,
    from_id: str,
    rel_type: str,
    to_label: str,
    to_id: str,
) -> None:
    await db.execute(
        """INSERT OR IGNORE INTO graph_links (from_label, from_id, rel_type, to_label, to_id, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (from_label, from_id, rel_type, to_label, to_id, _now()),
    )


async def unlink_incoming(
    db: aiosqlite.Connection,
    rel_type: str,
    from_label: str,
    to_label: str,
    to_id: str,
) -> None:
    await db.execute(
        """DELETE FROM graph_links
           WHERE rel_type = ? AND from_label = ? AND to_label = ? AND to_id = ?""",
        (rel_type, from_label, to_label, to_id),
    )


async def unlink_outgoing(
    db: aiosqlite.Connection,
    rel_type: str,
    from_label: str,
    from_id: str,
) -> None:
    await db.execute(
        "DELETE FROM graph_links WHERE rel_type = ? AND from_label = ? AND from_id = ?",
        (rel_type, from_label, from_id),
    )


async def detach(db: aiosqlite.Connection, label: str, ids: Iterable[str]) -> None:
    """Drop every link touching the given nodes, in either direction."""
    id_list = list(ids)
    if not id_list:
        return
    placeholders = ", ".join("?" for _ in id_list)
    await db.execute(
        f"""DELETE FROM graph_links
            WHERE (from_label = ? AND from_id IN ({placeholders}))
               OR (to_label = ? AND to_id IN ({placeholders}))""",
        [label, *id_list, label, *id_list],
    )


# --- Nodes ---

def _node_lookup(subject_type: SubjectType) -> SubjectLookup:
    lookup = SUBJECT_LOOKUPS[subject_type]
    if not lookup.is_node:
        raise ValueError(f"{subject_type.value} records are managed through the timeline endpoints")
    return lookup


def _check_properties(properties: dict) -> None:
    reserved = sorted(RESERVED_PROPERTIES & properties.keys())
    if reserved:
        raise ValueError(f"properties cannot contain reserved keys: {', '.join(reserved)}")


def _row_to_node(row: dict, subject_type: SubjectType) -> Node:
    return Node(
        id=row["id"],
        subject_type=subject_type,
        name=row["name"],
        properties=json.loads(row["properties"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class NodeService:
    """CRUD for the domain entity kinds a state change can apply to."""

    def __init__(self, databases: DatabaseRegistry):
        self.databases = databases

    async def _get_db(self, db_name: str) -> aiosqlite.Connection:
        return await self.databases.connect(db_name)

    async def create_node(self, db_name: str, subject_type: SubjectType, data: NodeCreate) -> Node:
        lookup = _node_lookup(subject_type)
        _check_properties(data.properties)
        now = _now()
        node = Node(
            id=data.id or str(uuid4()),
            subject_type=subject_type,
            name=data.name,
            properties=data.properties,
            created_at=now,
            updated_at=now,
        )
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(
                "SELECT 1 FROM graph_nodes WHERE label = ? AND id = ?",
                (lookup.label, node.id),
            )
            if await cursor.fetchone():
                raise ConflictError(f"{subject_type.value} {node.id} already exists")
            await db.execute(
                """INSERT INTO graph_nodes (id, label, name, properties, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (node.id, lookup.label, node.name, json.dumps(node.properties), now, now),
            )
            await db.commit()
        finally:
            await db.close()
        logger.info(f"Created {lookup.label} node {node.id[:8]}")
        return node

    async def get_node(self, db_name: str, subject_type: SubjectType, node_id: str) -> Node | None:
        lookup = _node_lookup(subject_type)
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(
                "SELECT * FROM graph_nodes WHERE label = ? AND id = ?",
                (lookup.label, node_id),
            )
            row = await cursor.fetchone()
            return _row_to_node(dict(row), subject_type) if row else None
        finally:
            await db.close()

    async def list_nodes(
        self,
        db_name: str,
        subject_type: SubjectType,
        query: PageQuery,
    ) -> tuple[list[Node], int]:
        lookup = _node_lookup(subject_type)
        list_filter = ListFilter().equals("label", lookup.label)
        page_sql, page_params = build_page_query(NODE_SOURCE, list_filter, query.q, query.limit, query.offset)
        count_sql, count_params = build_count_query(NODE_SOURCE, list_filter, query.q)
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(page_sql, page_params)
            rows = await cursor.fetchall()
            cursor = await db.execute(count_sql, count_params)
            total = (await cursor.fetchone())["total"]
        finally:
            await db.close()
        return [_row_to_node(dict(r), subject_type) for r in rows], total

    async def update_node(
        self,
        db_name: str,
        subject_type: SubjectType,
        node_id: str,
        data: NodeUpdate,
    ) -> Node | None:
        existing = await self.get_node(db_name, subject_type, node_id)
        if not existing:
            return None
        fields: dict = {}
        if data.name is not None:
            fields["name"] = data.name
        if data.properties is not None:
            _check_properties(data.properties)
            fields["properties"] = json.dumps({**existing.properties, **data.properties})
        if not fields:
            return existing
        fields["updated_at"] = _now()
        set_clause = ", ".join(f"{k} = ?" for k in fields)
        params = list(fields.values()) + [SUBJECT_LOOKUPS[subject_type].label, node_id]
        db = await self._get_db(db_name)
        try:
            await db.execute(
                f"UPDATE graph_nodes SET {set_clause} WHERE label = ? AND id = ?",
                params,
            )
            await db.commit()
        finally:
            await db.close()
        return await self.get_node(db_name, subject_type, node_id)

    async def delete_node(self, db_name: str, subject_type: SubjectType, node_id: str) -> bool:
        lookup = _node_lookup(subject_type)
        db = await self._get_db(db_name)
        try:
            cursor = await db.execute(
                "DELETE FROM graph_nodes WHERE label = ? AND id = ?",
                (lookup.label, node_id),
            )
            if cursor.rowcount == 0:
                return False
            await detach(db, lookup.label, [node_id])
            if subject_type == SubjectType.EVENT:
                await db.execute(
                    "UPDATE timeline_markers SET event_ref_id = NULL WHERE event_ref_id = ?",
                    (node_id,),
                )
            await db.commit()
        finally:
            await db.close()
        logger.info(f"Deleted {lookup.label} node {node_id[:8]}")
        return True
