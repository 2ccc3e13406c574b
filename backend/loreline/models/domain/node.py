"""Domain node models and the timeline context carried by node writes."""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from loreline.models.domain.common import CamelModel, OptionalText, RequiredText, Tick
from loreline.models.enums import SubjectType


class NodeCreate(CamelModel):
    """Payload for creating a domain node."""

    id: OptionalText = Field(
        default=None,
        description="Client-chosen id. A UUID is generated when omitted.",
    )
    name: RequiredText
    properties: dict[str, Any] = Field(default_factory=dict)


class NodeUpdate(CamelModel):
    """Payload for updating a domain node. Properties are merged shallowly."""

    name: OptionalText = None
    properties: Optional[dict[str, Any]] = None


class Node(CamelModel):
    """A domain entity (character, faction, event, ...) stored as a labelled node."""

    id: str
    subject_type: SubjectType
    name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def as_document(self) -> dict[str, Any]:
        """Flat view of the node as seen by the ledger: name plus properties."""
        return {"id": self.id, "name": self.name, **self.properties}


class TimelineWriteContext(CamelModel):
    """Timeline coordinates attached to a node write via request headers."""

    axis_id: RequiredText
    tick: Tick
    era_id: OptionalText = None
    segment_id: OptionalText = None
    marker_id: OptionalText = None
    event_id: OptionalText = None


class DualWriteResult(CamelModel):
    """Outcome of mirroring a node write into the ledger."""

    written: int = 0
    skipped: int = 0
    reason: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
