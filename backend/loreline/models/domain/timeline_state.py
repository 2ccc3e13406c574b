"""State-change ledger models and temporal query parameters."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import Field, model_validator

from loreline.models.domain.common import (
    HISTORY_DEFAULT_LIMIT,
    HISTORY_MAX_LIMIT,
    CamelModel,
    OptionalText,
    PageQuery,
    RawValue,
    RequiredText,
    Tags,
    Tick,
    check_range,
)
from loreline.models.enums import StateChangeStatus, SubjectType


class TimelineStateChangeInput(CamelModel):
    """Full replacement payload for creating or updating a ledger row."""

    axis_id: RequiredText
    era_id: OptionalText = None
    segment_id: OptionalText = None
    marker_id: OptionalText = None
    event_id: OptionalText = None
    subject_type: SubjectType
    subject_id: RequiredText
    field_path: RequiredText
    change_type: RequiredText
    old_value: RawValue = Field(
        default=None,
        description="Serialized previous value. Non-string JSON is serialized on input.",
    )
    new_value: RawValue = Field(
        default=None,
        description="Serialized new value. Non-string JSON is serialized on input.",
    )
    effective_tick: Tick
    detail: OptionalText = None
    notes: OptionalText = None
    tags: Tags = Field(default_factory=list)
    status: StateChangeStatus = StateChangeStatus.ACTIVE


class TimelineStateChange(CamelModel):
    """A single field-level assertion about a subject at an effective tick."""

    id: str
    axis_id: str
    era_id: Optional[str] = None
    segment_id: Optional[str] = None
    marker_id: Optional[str] = None
    event_id: Optional[str] = None
    subject_type: SubjectType
    subject_id: str
    field_path: str
    change_type: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    effective_tick: float
    detail: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    status: StateChangeStatus = StateChangeStatus.ACTIVE
    created_at: datetime
    updated_at: datetime


class _TickWindow(CamelModel):
    tick_from: Optional[Tick] = None
    tick_to: Optional[Tick] = None

    @model_validator(mode="after")
    def check_tick_window(self):
        check_range(self.tick_from, self.tick_to, "tickFrom", "tickTo")
        return self


class TimelineStateChangeListQuery(PageQuery, _TickWindow):
    axis_id: OptionalText = None
    era_id: OptionalText = None
    segment_id: OptionalText = None
    marker_id: OptionalText = None
    event_id: OptionalText = None
    subject_type: Optional[SubjectType] = None
    subject_id: OptionalText = None
    field_path: OptionalText = None
    status: Optional[StateChangeStatus] = None


class StateSnapshotQuery(CamelModel):
    """As-of query shared by snapshot and projection."""

    axis_id: RequiredText
    tick: Tick
    subject_type: Optional[SubjectType] = None
    subject_id: OptionalText = None


class StateHistoryQuery(_TickWindow):
    axis_id: RequiredText
    subject_type: SubjectType
    subject_id: RequiredText
    field_path: OptionalText = None
    status: Literal["active", "reverted", "void", "any"] = Field(
        default="active",
        description='Ledger status to replay; "any" replays every row.',
    )
    limit: int = Field(default=HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT)


class StateDiffQuery(CamelModel):
    axis_id: RequiredText
    subject_type: SubjectType
    subject_id: RequiredText
    from_tick: Tick
    to_tick: Tick

    @model_validator(mode="after")
    def check_ticks(self):
        check_range(self.from_tick, self.to_tick, "fromTick", "toTick")
        return self
