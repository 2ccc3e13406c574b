"""Results of temporal reconstruction: projection, history replay and diff."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from loreline.models.domain.common import CamelModel
from loreline.models.enums import SubjectType


class ProjectionField(CamelModel):
    """The winning ledger row behind one field of a projected subject.

    ``value`` is left unset for removals so it is omitted on the wire.
    """

    state_change_id: str
    field_path: str
    value: Any = None
    raw_value: Optional[str] = None
    change_type: str
    effective_tick: float
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    updated_at: datetime


class ProjectedSubject(CamelModel):
    subject_type: SubjectType
    subject_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    fields: list[ProjectionField] = Field(default_factory=list)


class StateHistoryEntry(CamelModel):
    """One replay step. ``new_value`` is left unset for removals."""

    state_change_id: str
    effective_tick: float
    field_path: str
    change_type: str
    old_value: Any = None
    new_value: Any = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    updated_at: datetime
    state_after: dict[str, Any] = Field(default_factory=dict)


class StateHistory(CamelModel):
    entries: list[StateHistoryEntry] = Field(default_factory=list)
    final_state: dict[str, Any] = Field(default_factory=dict)


class StateDiffEntry(CamelModel):
    field_path: str
    from_value: Any = None
    to_value: Any = None


class StateDiff(CamelModel):
    """Field-level difference of one subject's projection between two ticks."""

    subject_type: SubjectType
    subject_id: str
    from_tick: float
    to_tick: float
    added: list[StateDiffEntry] = Field(default_factory=list)
    removed: list[StateDiffEntry] = Field(default_factory=list)
    updated: list[StateDiffEntry] = Field(default_factory=list)
    from_state: dict[str, Any] = Field(default_factory=dict)
    to_state: dict[str, Any] = Field(default_factory=dict)
