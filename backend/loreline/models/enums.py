"""
Enum definitions for the Loreline API.

Free-form strings (marker types, change types) stay plain ``str``.
"""
from enum import Enum


class AxisType(str, Enum):
    """Role of an axis in the multiverse layout."""
    MAIN = "main"
    PARALLEL = "parallel"
    BRANCH = "branch"
    LOOP = "loop"


class TimelineStatus(str, Enum):
    """Lifecycle status of axes, eras, segments and markers."""
    ACTIVE = "active"
    ARCHIVED = "archived"


class StateChangeStatus(str, Enum):
    """Lifecycle status of a ledger row. Only active rows feed projections."""
    ACTIVE = "active"
    REVERTED = "reverted"
    VOID = "void"


class SubjectType(str, Enum):
    """Kinds of records a state change can apply to."""
    PROJECT = "project"
    OVERVIEW = "overview"
    CHARACTER = "character"
    RACE = "race"
    RANK = "rank"
    RANK_SYSTEM = "rankSystem"
    MAP_SYSTEM = "mapSystem"
    SPECIAL_ABILITY = "specialAbility"
    EVENT = "event"
    FACTION = "faction"
    TIMELINE = "timeline"
    TIMELINE_AXIS = "timelineAxis"
    TIMELINE_ERA = "timelineEra"
    TIMELINE_SEGMENT = "timelineSegment"
    TIMELINE_MARKER = "timelineMarker"
    LOCATION = "location"
    ARC = "arc"
    CHAPTER = "chapter"
    SCENE = "scene"
    ITEM = "item"
    WORLD_RULE = "worldRule"
    RELATIONSHIP_TYPE = "relationshipType"
    ENERGY_TYPE = "energyType"
    ENERGY_TIER = "energyTier"


REMOVAL_CHANGE_TYPES = frozenset({"remove", "delete", "unset"})


def normalize_type(type_str: str) -> str:
    """
    Normalize a free-form type string for comparison.

    Examples:
        " Remove " -> "remove"
        "UNSET" -> "unset"
    """
    return type_str.lower().strip()
