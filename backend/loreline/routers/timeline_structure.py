"""Timeline hierarchy routes: axes, eras, segments and markers."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from loreline.dependencies import DatabaseNameDep, StructureServiceDep
from loreline.models import (
    DataResponse,
    ListResponse,
    MarkerEventLink,
    TimelineAxis,
    TimelineAxisInput,
    TimelineAxisListQuery,
    TimelineEra,
    TimelineEraInput,
    TimelineEraListQuery,
    TimelineMarker,
    TimelineMarkerInput,
    TimelineMarkerListQuery,
    TimelineSegment,
    TimelineSegmentInput,
    TimelineSegmentListQuery,
)
from loreline.routers.errors import list_meta, service_errors

router = APIRouter()


# --- Axes ---

@router.get("/timeline-axes", response_model=ListResponse[TimelineAxis])
async def list_axes(
    db_name: DatabaseNameDep,
    query: Annotated[TimelineAxisListQuery, Query()],
    service: StructureServiceDep,
):
    axes, total = await service.list_axes(db_name, query)
    return ListResponse[TimelineAxis](data=axes, meta=list_meta(query, total))


@router.post("/timeline-axes", response_model=DataResponse[TimelineAxis], status_code=201)
async def create_axis(db_name: DatabaseNameDep, body: TimelineAxisInput, service: StructureServiceDep):
    with service_errors():
        axis = await service.create_axis(db_name, body)
    return DataResponse[TimelineAxis](data=axis)


@router.get("/timeline-axes/{axis_id}", response_model=DataResponse[TimelineAxis])
async def get_axis(axis_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    axis = await service.get_axis(db_name, axis_id)
    if not axis:
        raise HTTPException(404, "timeline axis not found")
    return DataResponse[TimelineAxis](data=axis)


@router.put("/timeline-axes/{axis_id}", response_model=DataResponse[TimelineAxis])
async def update_axis(
    axis_id: str,
    db_name: DatabaseNameDep,
    body: TimelineAxisInput,
    service: StructureServiceDep,
):
    with service_errors():
        axis = await service.update_axis(db_name, axis_id, body)
    if not axis:
        raise HTTPException(404, "timeline axis not found")
    return DataResponse[TimelineAxis](data=axis)


@router.delete("/timeline-axes/{axis_id}", status_code=204)
async def delete_axis(axis_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    if not await service.delete_axis(db_name, axis_id):
        raise HTTPException(404, "timeline axis not found")
    return Response(status_code=204)


# --- Eras ---

@router.get("/timeline-eras", response_model=ListResponse[TimelineEra])
async def list_eras(
    db_name: DatabaseNameDep,
    query: Annotated[TimelineEraListQuery, Query()],
    service: StructureServiceDep,
):
    eras, total = await service.list_eras(db_name, query)
    return ListResponse[TimelineEra](data=eras, meta=list_meta(query, total))


@router.post("/timeline-eras", response_model=DataResponse[TimelineEra], status_code=201)
async def create_era(db_name: DatabaseNameDep, body: TimelineEraInput, service: StructureServiceDep):
    with service_errors():
        era = await service.create_era(db_name, body)
    return DataResponse[TimelineEra](data=era)


@router.get("/timeline-eras/{era_id}", response_model=DataResponse[TimelineEra])
async def get_era(era_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    era = await service.get_era(db_name, era_id)
    if not era:
        raise HTTPException(404, "timeline era not found")
    return DataResponse[TimelineEra](data=era)


@router.put("/timeline-eras/{era_id}", response_model=DataResponse[TimelineEra])
async def update_era(
    era_id: str,
    db_name: DatabaseNameDep,
    body: TimelineEraInput,
    service: StructureServiceDep,
):
    with service_errors():
        era = await service.update_era(db_name, era_id, body)
    if not era:
        raise HTTPException(404, "timeline era not found")
    return DataResponse[TimelineEra](data=era)


@router.delete("/timeline-eras/{era_id}", status_code=204)
async def delete_era(era_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    if not await service.delete_era(db_name, era_id):
        raise HTTPException(404, "timeline era not found")
    return Response(status_code=204)


# --- Segments ---

@router.get("/timeline-segments", response_model=ListResponse[TimelineSegment])
async def list_segments(
    db_name: DatabaseNameDep,
    query: Annotated[TimelineSegmentListQuery, Query()],
    service: StructureServiceDep,
):
    segments, total = await service.list_segments(db_name, query)
    return ListResponse[TimelineSegment](data=segments, meta=list_meta(query, total))


@router.post("/timeline-segments", response_model=DataResponse[TimelineSegment], status_code=201)
async def create_segment(db_name: DatabaseNameDep, body: TimelineSegmentInput, service: StructureServiceDep):
    with service_errors():
        segment = await service.create_segment(db_name, body)
    return DataResponse[TimelineSegment](data=segment)


@router.get("/timeline-segments/{segment_id}", response_model=DataResponse[TimelineSegment])
async def get_segment(segment_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    segment = await service.get_segment(db_name, segment_id)
    if not segment:
        raise HTTPException(404, "timeline segment not found")
    return DataResponse[TimelineSegment](data=segment)


@router.put("/timeline-segments/{segment_id}", response_model=DataResponse[TimelineSegment])
async def update_segment(
    segment_id: str,
    db_name: DatabaseNameDep,
    body: TimelineSegmentInput,
    service: StructureServiceDep,
):
    with service_errors():
        segment = await service.update_segment(db_name, segment_id, body)
    if not segment:
        raise HTTPException(404, "timeline segment not found")
    return DataResponse[TimelineSegment](data=segment)


@router.delete("/timeline-segments/{segment_id}", status_code=204)
async def delete_segment(segment_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    if not await service.delete_segment(db_name, segment_id):
        raise HTTPException(404, "timeline segment not found")
    return Response(status_code=204)


# --- Markers ---

@router.get("/timeline-markers", response_model=ListResponse[TimelineMarker])
async def list_markers(
    db_name: DatabaseNameDep,
    query: Annotated[TimelineMarkerListQuery, Query()],
    service: StructureServiceDep,
):
    markers, total = await service.list_markers(db_name, query)
    return ListResponse[TimelineMarker](data=markers, meta=list_meta(query, total))


@router.post("/timeline-markers", response_model=DataResponse[TimelineMarker], status_code=201)
async def create_marker(db_name: DatabaseNameDep, body: TimelineMarkerInput, service: StructureServiceDep):
    with service_errors():
        marker = await service.create_marker(db_name, body)
    return DataResponse[TimelineMarker](data=marker)


@router.get("/timeline-markers/{marker_id}", response_model=DataResponse[TimelineMarker])
async def get_marker(marker_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    marker = await service.get_marker(db_name, marker_id)
    if not marker:
        raise HTTPException(404, "timeline marker not found")
    return DataResponse[TimelineMarker](data=marker)


@router.put("/timeline-markers/{marker_id}", response_model=DataResponse[TimelineMarker])
async def update_marker(
    marker_id: str,
    db_name: DatabaseNameDep,
    body: TimelineMarkerInput,
    service: StructureServiceDep,
):
    with service_errors():
        marker = await service.update_marker(db_name, marker_id, body)
    if not marker:
        raise HTTPException(404, "timeline marker not found")
    return DataResponse[TimelineMarker](data=marker)


@router.delete("/timeline-markers/{marker_id}", status_code=204)
async def delete_marker(marker_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    if not await service.delete_marker(db_name, marker_id):
        raise HTTPException(404, "timeline marker not found")
    return Response(status_code=204)


@router.put("/timeline-markers/{marker_id}/event", response_model=DataResponse[TimelineMarker])
async def link_marker_event(
    marker_id: str,
    db_name: DatabaseNameDep,
    body: MarkerEventLink,
    service: StructureServiceDep,
):
    with service_errors():
        marker = await service.link_event_to_marker(db_name, marker_id, body.event_id)
    if not marker:
        raise HTTPException(404, "timeline marker not found")
    return DataResponse[TimelineMarker](data=marker)


@router.delete("/timeline-markers/event/{event_id}")
async def unlink_event_markers(event_id: str, db_name: DatabaseNameDep, service: StructureServiceDep):
    cleared = await service.unlink_event_markers(db_name, event_id)
    return {"data": {"eventId": event_id, "clearedMarkers": cleared}}
