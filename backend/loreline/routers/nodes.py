"""Domain node routes, with optional dual-write into the timeline ledger."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Response

from loreline.dependencies import (
    DatabaseNameDep,
    DualWriteServiceDep,
    NodeServiceDep,
    TimelineWriteContextDep,
)
from loreline.models import DataResponse, ListResponse, Node, NodeCreate, NodeUpdate, PageQuery, SubjectType
from loreline.routers.errors import list_meta, service_errors

router = APIRouter()


@router.get("/{subject_type}", response_model=ListResponse[Node])
async def list_nodes(
    subject_type: SubjectType,
    db_name: DatabaseNameDep,
    query: Annotated[PageQuery, Query()],
    service: NodeServiceDep,
):
    with service_errors():
        nodes, total = await service.list_nodes(db_name, subject_type, query)
    return ListResponse[Node](data=nodes, meta=list_meta(query, total))


@router.post("/{subject_type}", response_model=DataResponse[Node], status_code=201)
async def create_node(
    subject_type: SubjectType,
    db_name: DatabaseNameDep,
    body: NodeCreate,
    service: NodeServiceDep,
    dual_write: DualWriteServiceDep,
    timeline: TimelineWriteContextDep,
):
    with service_errors():
        node = await service.create_node(db_name, subject_type, body)
    result = await dual_write.record_node_write(
        db_name, subject_type, node.id, node.as_document(), timeline
    )
    return DataResponse[Node](data=node, meta={"timeline": result.model_dump(by_alias=True)})


@router.get("/{subject_type}/{node_id}", response_model=DataResponse[Node])
async def get_node(
    subject_type: SubjectType,
    node_id: str,
    db_name: DatabaseNameDep,
    service: NodeServiceDep,
):
    with service_errors():
        node = await service.get_node(db_name, subject_type, node_id)
    if not node:
        raise HTTPException(404, f"{subject_type.value} not found")
    return DataResponse[Node](data=node)


@router.put("/{subject_type}/{node_id}", response_model=DataResponse[Node])
async def update_node(
    subject_type: SubjectType,
    node_id: str,
    db_name: DatabaseNameDep,
    body: NodeUpdate,
    service: NodeServiceDep,
    dual_write: DualWriteServiceDep,
    timeline: TimelineWriteContextDep,
):
    with service_errors():
        node = await service.update_node(db_name, subject_type, node_id, body)
    if not node:
        raise HTTPException(404, f"{subject_type.value} not found")
    changed = body.model_dump(exclude_none=True)
    document = {**changed.pop("properties", {}), **changed}
    result = await dual_write.record_node_write(db_name, subject_type, node.id, document, timeline)
    return DataResponse[Node](data=node, meta={"timeline": result.model_dump(by_alias=True)})


@router.delete("/{subject_type}/{node_id}", status_code=204)
async def delete_node(
    subject_type: SubjectType,
    node_id: str,
    db_name: DatabaseNameDep,
    service: NodeServiceDep,
):
    with service_errors():
        deleted = await service.delete_node(db_name, subject_type, node_id)
    if not deleted:
        raise HTTPException(404, f"{subject_type.value} not found")
    return Response(status_code=204)
