"""
Loreline models.

Usage:
    from loreline.models import TimelineAxis, TimelineAxisInput, TimelineStateChange
    from loreline.models import AxisType, SubjectType, StateChangeStatus
    from loreline.models import ProjectedSubject, StateHistory, StateDiff
"""

# --- Enums & utilities ---
from loreline.models.enums import (
    AxisType,
    TimelineStatus,
    StateChangeStatus,
    SubjectType,
    REMOVAL_CHANGE_TYPES,
    normalize_type,
)

# --- Domain models ---
from loreline.models.domain import (
    LIST_DEFAULT_LIMIT, LIST_MAX_LIMIT, HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT,
    CamelModel, PageQuery,
    TimelineAxis, TimelineAxisInput, TimelineAxisListQuery,
    TimelineEra, TimelineEraInput, TimelineEraListQuery,
    TimelineSegment, TimelineSegmentInput, TimelineSegmentListQuery,
    TimelineMarker, TimelineMarkerInput, TimelineMarkerListQuery,
    MarkerEventLink,
    TimelineStateChange, TimelineStateChangeInput, TimelineStateChangeListQuery,
    StateSnapshotQuery, StateHistoryQuery, StateDiffQuery,
    Node, NodeCreate, NodeUpdate, TimelineWriteContext, DualWriteResult,
)

# --- Result models ---
from loreline.models.results import (
    DataResponse, ListResponse,
    ProjectionField, ProjectedSubject,
    StateHistoryEntry, StateHistory,
    StateDiffEntry, StateDiff,
)

__all__ = [
    # Enums
    "AxisType", "TimelineStatus", "StateChangeStatus", "SubjectType",
    "REMOVAL_CHANGE_TYPES", "normalize_type",
    # Domain
    "LIST_DEFAULT_LIMIT", "LIST_MAX_LIMIT", "HISTORY_DEFAULT_LIMIT", "HISTORY_MAX_LIMIT",
    "CamelModel", "PageQuery",
    "TimelineAxis", "TimelineAxisInput", "TimelineAxisListQuery",
    "TimelineEra", "TimelineEraInput", "TimelineEraListQuery",
    "TimelineSegment", "TimelineSegmentInput", "TimelineSegmentListQuery",
    "TimelineMarker", "TimelineMarkerInput", "TimelineMarkerListQuery",
    "MarkerEventLink",
    "TimelineStateChange", "TimelineStateChangeInput", "TimelineStateChangeListQuery",
    "StateSnapshotQuery", "StateHistoryQuery", "StateDiffQuery",
    "Node", "NodeCreate", "NodeUpdate", "TimelineWriteContext", "DualWriteResult",
    # Results
    "DataResponse", "ListResponse",
    "ProjectionField", "ProjectedSubject",
    "StateHistoryEntry", "StateHistory",
    "StateDiffEntry", "StateDiff",
]
