"""Timeline hierarchy models: axes, eras, segments and markers."""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BeforeValidator, Field, model_validator

from loreline.models.domain.common import (
    CamelModel,
    NonNegative,
    OptionalText,
    PageQuery,
    RequiredText,
    Tags,
    Tick,
    check_range,
)
from loreline.models.enums import AxisType, TimelineStatus


def _default_when_missing(default):
    def _apply(value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        return value.strip() if isinstance(value, str) else value
    return BeforeValidator(_apply)


AxisTypeField = Annotated[AxisType, _default_when_missing(AxisType.MAIN)]
StatusField = Annotated[TimelineStatus, _default_when_missing(TimelineStatus.ACTIVE)]


class _TickRange(CamelModel):
    start_tick: Optional[Tick] = None
    end_tick: Optional[Tick] = None

    @model_validator(mode="after")
    def check_tick_range(self):
        check_range(self.start_tick, self.end_tick, "startTick", "endTick")
        return self


# --- Axis ---

class TimelineAxisInput(_TickRange):
    """Full replacement payload for creating or updating an axis."""

    name: RequiredText
    code: OptionalText = None
    axis_type: AxisTypeField = AxisType.MAIN
    description: OptionalText = None
    parent_axis_id: OptionalText = None
    origin_segment_id: OptionalText = None
    origin_offset_years: Optional[NonNegative] = None
    policy: OptionalText = None
    sort_order: Optional[NonNegative] = None
    status: StatusField = TimelineStatus.ACTIVE
    notes: OptionalText = None
    tags: Tags = Field(default_factory=list)


class TimelineAxis(CamelModel):
    """A named timeline within the multiverse."""

    id: str
    name: str
    code: Optional[str] = None
    axis_type: AxisType = AxisType.MAIN
    description: Optional[str] = None
    parent_axis_id: Optional[str] = None
    origin_segment_id: Optional[str] = None
    origin_offset_years: Optional[float] = None
    policy: Optional[str] = None
    sort_order: Optional[float] = None
    start_tick: Optional[float] = None
    end_tick: Optional[float] = None
    status: TimelineStatus = TimelineStatus.ACTIVE
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TimelineAxisListQuery(PageQuery):
    name: OptionalText = None
    code: OptionalText = None
    axis_type: Optional[AxisType] = None
    status: Optional[TimelineStatus] = None
    parent_axis_id: OptionalText = None


# --- Era ---

class TimelineEraInput(_TickRange):
    """Full replacement payload for creating or updating an era."""

    axis_id: RequiredText
    name: RequiredText
    code: OptionalText = None
    summary: OptionalText = None
    description: OptionalText = None
    order: Optional[NonNegative] = None
    status: StatusField = TimelineStatus.ACTIVE
    notes: OptionalText = None
    tags: Tags = Field(default_factory=list)


class TimelineEra(CamelModel):
    """A contiguous span within an axis."""

    id: str
    axis_id: str
    name: str
    code: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    order: Optional[float] = None
    start_tick: Optional[float] = None
    end_tick: Optional[float] = None
    status: TimelineStatus = TimelineStatus.ACTIVE
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TimelineEraListQuery(PageQuery):
    name: OptionalText = None
    code: OptionalText = None
    axis_id: OptionalText = None
    status: Optional[TimelineStatus] = None


# --- Segment ---

class TimelineSegmentInput(_TickRange):
    """Full replacement payload for creating or updating a segment."""

    era_id: RequiredText
    name: RequiredText
    duration_years: Tick = Field(gt=0)
    code: OptionalText = None
    summary: OptionalText = None
    description: OptionalText = None
    order: Optional[NonNegative] = None
    status: StatusField = TimelineStatus.ACTIVE
    notes: OptionalText = None
    tags: Tags = Field(default_factory=list)


class TimelineSegment(CamelModel):
    """A sub-span of an era with a fixed duration in years."""

    id: str
    axis_id: str
    era_id: str
    name: str
    duration_years: float
    code: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    order: Optional[float] = None
    start_tick: Optional[float] = None
    end_tick: Optional[float] = None
    status: TimelineStatus = TimelineStatus.ACTIVE
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TimelineSegmentListQuery(PageQuery):
    name: OptionalText = None
    code: OptionalText = None
    axis_id: OptionalText = None
    era_id: OptionalText = None
    status: Optional[TimelineStatus] = None


# --- Marker ---

class TimelineMarkerInput(CamelModel):
    """Full replacement payload for creating or updating a marker."""

    segment_id: RequiredText
    label: RequiredText
    tick: Tick
    marker_type: OptionalText = None
    description: OptionalText = None
    event_ref_id: OptionalText = None
    status: StatusField = TimelineStatus.ACTIVE
    notes: OptionalText = None
    tags: Tags = Field(default_factory=list)


class TimelineMarker(CamelModel):
    """A point in time inside a segment, optionally tied to one event."""

    id: str
    axis_id: str
    era_id: str
    segment_id: str
    label: str
    tick: float
    marker_type: Optional[str] = None
    description: Optional[str] = None
    event_ref_id: Optional[str] = None
    status: TimelineStatus = TimelineStatus.ACTIVE
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class TimelineMarkerListQuery(PageQuery):
    label: OptionalText = None
    marker_type: OptionalText = None
    axis_id: OptionalText = None
    era_id: OptionalText = None
    segment_id: OptionalText = None
    status: Optional[TimelineStatus] = None
    tick_from: Optional[Tick] = None
    tick_to: Optional[Tick] = None

    @model_validator(mode="after")
    def check_tick_window(self):
        check_range(self.tick_from, self.tick_to, "tickFrom", "tickTo")
        return self


class MarkerEventLink(CamelModel):
    """Payload for pointing a marker at an event."""

    event_id: RequiredText
