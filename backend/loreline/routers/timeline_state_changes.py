"""State-change ledger routes and temporal queries."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from loreline.dependencies import DatabaseNameDep, StateChangeServiceDep
from loreline.models import (
    DataResponse,
    ListResponse,
    ProjectedSubject,
    StateDiff,
    StateDiffQuery,
    StateHistoryEntry,
    StateHistoryQuery,
    StateSnapshotQuery,
    TimelineStateChange,
    TimelineStateChangeInput,
    TimelineStateChangeListQuery,
)
from loreline.routers.errors import list_meta, service_errors

router = APIRouter()


@router.get("/timeline-state-changes", response_model=ListResponse[TimelineStateChange])
async def list_state_changes(
    db_name: DatabaseNameDep,
    query: Annotated[TimelineStateChangeListQuery, Query()],
    service: StateChangeServiceDep,
):
    changes, total = await service.list_state_changes(db_name, query)
    return ListResponse[TimelineStateChange](data=changes, meta=list_meta(query, total))


@router.post("/timeline-state-changes", response_model=DataResponse[TimelineStateChange], status_code=201)
async def create_state_change(
    db_name: DatabaseNameDep,
    body: TimelineStateChangeInput,
    service: StateChangeServiceDep,
):
    with service_errors():
        change = await service.create_state_change(db_name, body)
    return DataResponse[TimelineStateChange](data=change)


@router.get("/timeline-state-changes/snapshot", response_model=ListResponse[TimelineStateChange])
async def get_snapshot(
    db_name: DatabaseNameDep,
    query: Annotated[StateSnapshotQuery, Query()],
    service: StateChangeServiceDep,
):
    with service_errors():
        changes = await service.snapshot(db_name, query)
    return ListResponse[TimelineStateChange](data=changes, meta=list_meta(query, len(changes)))


@router.get(
    "/timeline-state-changes/projection",
    response_model=ListResponse[ProjectedSubject],
    response_model_exclude_unset=True,
)
async def get_projection(
    db_name: DatabaseNameDep,
    query: Annotated[StateSnapshotQuery, Query()],
    service: StateChangeServiceDep,
):
    with service_errors():
        subjects = await service.projection(db_name, query)
    meta = list_meta(query, len(subjects))
    meta.update(
        subjectCount=len(subjects),
        fieldCount=sum(len(subject.fields) for subject in subjects),
    )
    return ListResponse[ProjectedSubject](data=subjects, meta=meta)


@router.get(
    "/timeline-state-changes/history",
    response_model=ListResponse[StateHistoryEntry],
    response_model_exclude_unset=True,
)
async def get_history(
    db_name: DatabaseNameDep,
    query: Annotated[StateHistoryQuery, Query()],
    service: StateChangeServiceDep,
):
    with service_errors():
        history, total = await service.history(db_name, query)
    meta = list_meta(query, total)
    meta.update(
        hasMore=total > len(history.entries),
        finalState=history.final_state,
    )
    return ListResponse[StateHistoryEntry](data=history.entries, meta=meta)


@router.get(
    "/timeline-state-changes/diff",
    response_model=DataResponse[StateDiff],
    response_model_exclude_unset=True,
)
async def get_diff(
    db_name: DatabaseNameDep,
    query: Annotated[StateDiffQuery, Query()],
    service: StateChangeServiceDep,
):
    with service_errors():
        diff = await service.diff(db_name, query)
    return DataResponse[StateDiff](data=diff, meta=query.model_dump(by_alias=True, mode="json"))


@router.get("/timeline-state-changes/{change_id}", response_model=DataResponse[TimelineStateChange])
async def get_state_change(change_id: str, db_name: DatabaseNameDep, service: StateChangeServiceDep):
    change = await service.get_state_change(db_name, change_id)
    if not change:
        raise HTTPException(404, "timeline state change not found")
    return DataResponse[TimelineStateChange](data=change)


@router.put("/timeline-state-changes/{change_id}", response_model=DataResponse[TimelineStateChange])
async def update_state_change(
    change_id: str,
    db_name: DatabaseNameDep,
    body: TimelineStateChangeInput,
    service: StateChangeServiceDep,
):
    with service_errors():
        change = await service.update_state_change(db_name, change_id, body)
    if not change:
        raise HTTPException(404, "timeline state change not found")
    return DataResponse[TimelineStateChange](data=change)


@router.delete("/timeline-state-changes/{change_id}", status_code=204)
async def delete_state_change(change_id: str, db_name: DatabaseNameDep, service: StateChangeServiceDep):
    if not await service.delete_state_change(db_name, change_id):
        raise HTTPException(404, "timeline state change not found")
    return Response(status_code=204)
