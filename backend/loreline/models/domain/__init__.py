"""Domain models for the timeline hierarchy, the state-change ledger and domain nodes."""

from loreline.models.domain.common import (
    LIST_DEFAULT_LIMIT,
    LIST_MAX_LIMIT,
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    CamelModel,
    PageQuery,
)
from loreline.models.domain.timeline_structure import (
    TimelineAxis, TimelineAxisInput, TimelineAxisListQuery,
    TimelineEra, TimelineEraInput, TimelineEraListQuery,
    TimelineSegment, TimelineSegmentInput, TimelineSegmentListQuery,
    TimelineMarker, TimelineMarkerInput, TimelineMarkerListQuery,
    MarkerEventLink,
)
from loreline.models.domain.timeline_state import (
    TimelineStateChange,
    TimelineStateChangeInput,
    TimelineStateChangeListQuery,
    StateSnapshotQuery,
    StateHistoryQuery,
    StateDiffQuery,
)
from loreline.models.domain.node import (
    Node, NodeCreate, NodeUpdate,
    TimelineWriteContext, DualWriteResult,
)

__all__ = [
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
]
