"""Result models for service operations."""

from loreline.models.results.envelope import DataResponse, ListResponse
from loreline.models.results.temporal import (
    ProjectionField, ProjectedSubject,
    StateHistoryEntry, StateHistory,
    StateDiffEntry, StateDiff,
)

__all__ = [
    "DataResponse", "ListResponse",
    "ProjectionField", "ProjectedSubject",
    "StateHistoryEntry", "StateHistory",
    "StateDiffEntry", "StateDiff",
]
