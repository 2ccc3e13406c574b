"""Existence checks for records referenced by timeline writes.

Checks run on the caller's open connection so they share its transaction.
"""

from dataclasses import dataclass
from typing import Optional

import aiosqlite

from loreline.models import SubjectType


@dataclass(frozen=True)
class SubjectLookup:
    """Where records of one subject type live and how links label them."""

    label: str
    table: str = "graph_nodes"

    @property
    def is_node(self) -> bool:
        return self.table == "graph_nodes"


@dataclass(frozen=True)
class MarkerRefs:
    id: str
    axis_id: str
    era_id: str
    segment_id: str


@dataclass(frozen=True)
class SegmentRefs:
    id: str
    axis_id: str
    era_id: str


SUBJECT_LOOKUPS: dict[SubjectType, SubjectLookup] = {
    SubjectType.PROJECT: SubjectLookup("Project"),
    SubjectType.OVERVIEW: SubjectLookup("Overview"),
    SubjectType.CHARACTER: SubjectLookup("Character"),
    SubjectType.RACE: SubjectLookup("Race"),
    SubjectType.RANK: SubjectLookup("Rank"),
    SubjectType.RANK_SYSTEM: SubjectLookup("RankSystem"),
    SubjectType.MAP_SYSTEM: SubjectLookup("MapSystem"),
    SubjectType.SPECIAL_ABILITY: SubjectLookup("SpecialAbility"),
    SubjectType.EVENT: SubjectLookup("Event"),
    SubjectType.FACTION: SubjectLookup("Faction"),
    SubjectType.TIMELINE: SubjectLookup("Timeline"),
    SubjectType.TIMELINE_AXIS: SubjectLookup("TimelineAxis", "timeline_axes"),
    SubjectType.TIMELINE_ERA: SubjectLookup("TimelineEra", "timeline_eras"),
    SubjectType.TIMELINE_SEGMENT: SubjectLookup("TimelineSegment", "timeline_segments"),
    SubjectType.TIMELINE_MARKER: SubjectLookup("TimelineMarker", "timeline_markers"),
    SubjectType.LOCATION: SubjectLookup("Location"),
    SubjectType.ARC: SubjectLookup("Arc"),
    SubjectType.CHAPTER: SubjectLookup("Chapter"),
    SubjectType.SCENE: SubjectLookup("Scene"),
    SubjectType.ITEM: SubjectLookup("Item"),
    SubjectType.WORLD_RULE: SubjectLookup("WorldRule"),
    SubjectType.RELATIONSHIP_TYPE: SubjectLookup("RelationshipType"),
    SubjectType.ENERGY_TYPE: SubjectLookup("EnergyType"),
    SubjectType.ENERGY_TIER: SubjectLookup("EnergyTier"),
}

STATE_CHANGE_LABEL = "TimelineStateChange"
MARKER_LABEL = SUBJECT_LOOKUPS[SubjectType.TIMELINE_MARKER].label
EVENT_LABEL = SUBJECT_LOOKUPS[SubjectType.EVENT].label


def subject_label(subject_type: SubjectType | str) -> str:
    return SUBJECT_LOOKUPS[SubjectType(subject_type)].label


async def _exists(db: aiosqlite.Connection, sql: str, params: tuple) -> bool:
    cursor = await db.execute(sql, params)
    return await cursor.fetchone() is not None


async def axis_exists(db: aiosqlite.Connection, axis_id: str) -> bool:
    return await _exists(db, "SELECT 1 FROM timeline_axes WHERE id = ?", (axis_id,))


async def era_axis_id(db: aiosqlite.Connection, era_id: str) -> Optional[str]:
    cursor = await db.execute("SELECT axis_id FROM timeline_eras WHERE id = ?", (era_id,))
    row = await cursor.fetchone()
    return row["axis_id"] if row else None


async def get_segment_refs(db: aiosqlite.Connection, segment_id: str) -> Optional[SegmentRefs]:
    cursor = await db.execute(
        "SELECT id, axis_id, era_id FROM timeline_segment_refs WHERE id = ?",
        (segment_id,),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return SegmentRefs(id=row["id"], axis_id=row["axis_id"], era_id=row["era_id"])


async def get_marker_refs(db: aiosqlite.Connection, marker_id: str) -> Optional[MarkerRefs]:
    cursor = await db.execute(
        "SELECT id, axis_id, era_id, segment_id FROM timeline_marker_refs WHERE id = ?",
        (marker_id,),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return MarkerRefs(
        id=row["id"],
        axis_id=row["axis_id"],
        era_id=row["era_id"],
        segment_id=row["segment_id"],
    )


async def subject_exists(
    db: aiosqlite.Connection,
    subject_type: SubjectType | str,
    subject_id: str,
) -> bool:
    """
    Check that a subject of the given type exists.

    :param db: Open connection
    :type db: aiosqlite.Connection
    :param subject_type: One of the supported subject types
    :type subject_type: SubjectType | str
    :param subject_id: Subject id
    :type subject_id: str
    :return: True when the record exists
    :rtype: bool
    """
    lookup = SUBJECT_LOOKUPS[SubjectType(subject_type)]
    if lookup.is_node:
        return await _exists(
            db,
            "SELECT 1 FROM graph_nodes WHERE label = ? AND id = ?",
            (lookup.label, subject_id),
        )
    return await _exists(db, f"SELECT 1 FROM {lookup.table} WHERE id = ?", (subject_id,))


async def event_exists(db: aiosqlite.Connection, event_id: str) -> bool:
    return await subject_exists(db, SubjectType.EVENT, event_id)
