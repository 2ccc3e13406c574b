"""
Dependency injection for FastAPI routes.

Provides typed service dependencies that enable IDE navigation (Ctrl+Click).
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request
from pydantic import ValidationError

from loreline.database.db import validate_database_name
from loreline.models import TimelineWriteContext
from loreline.services.graph_nodes import NodeService
from loreline.services.timeline_dual_write import TimelineDualWriteService
from loreline.services.timeline_state_changes import TimelineStateChangeService
from loreline.services.timeline_structure import TimelineStructureService

DATABASE_HEADER = "x-database"


def get_structure_service(request: Request) -> TimelineStructureService:
    return request.app.state.structure_service


def get_state_change_service(request: Request) -> TimelineStateChangeService:
    return request.app.state.state_change_service


def get_node_service(request: Request) -> NodeService:
    return request.app.state.node_service


def get_dual_write_service(request: Request) -> TimelineDualWriteService:
    return request.app.state.dual_write_service


def get_database_name(
    x_database: Annotated[Optional[str], Header(alias=DATABASE_HEADER)] = None,
) -> str:
    try:
        return validate_database_name(x_database)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc


def get_timeline_write_context(
    x_timeline_axis_id: Annotated[Optional[str], Header()] = None,
    x_timeline_tick: Annotated[Optional[str], Header()] = None,
    x_timeline_era_id: Annotated[Optional[str], Header()] = None,
    x_timeline_segment_id: Annotated[Optional[str], Header()] = None,
    x_timeline_marker_id: Annotated[Optional[str], Header()] = None,
    x_timeline_event_id: Annotated[Optional[str], Header()] = None,
) -> TimelineWriteContext | None:
    """Timeline coordinates for dual-write, or None when the headers are absent or unusable."""
    if not x_timeline_axis_id or not x_timeline_tick:
        return None
    try:
        return TimelineWriteContext(
            axis_id=x_timeline_axis_id,
            tick=x_timeline_tick,
            era_id=x_timeline_era_id,
            segment_id=x_timeline_segment_id,
            marker_id=x_timeline_marker_id,
            event_id=x_timeline_event_id,
        )
    except ValidationError:
        return None


StructureServiceDep = Annotated[TimelineStructureService, Depends(get_structure_service)]
StateChangeServiceDep = Annotated[TimelineStateChangeService, Depends(get_state_change_service)]
NodeServiceDep = Annotated[NodeService, Depends(get_node_service)]
DualWriteServiceDep = Annotated[TimelineDualWriteService, Depends(get_dual_write_service)]
DatabaseNameDep = Annotated[str, Depends(get_database_name)]
TimelineWriteContextDep = Annotated[Optional[TimelineWriteContext], Depends(get_timeline_write_context)]
