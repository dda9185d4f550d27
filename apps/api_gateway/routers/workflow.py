from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from apps.api_gateway.deps import auth_dep, gateway_dep
from fieldsight_agent.common.errors import NotFoundError
from fieldsight_agent.common.logging import get_project_logger
from fieldsight_agent.delivery.base import WorkflowActionRequest
from fieldsight_agent.domain.enums import WorkflowAction
from fieldsight_agent.realtime.gateway import RealtimeGateway
from fieldsight_agent.storage.base import NewWorkflowEvent

log = get_project_logger()

router = APIRouter()
AUTH_DEP = Depends(auth_dep)
GATEWAY_DEP = Depends(gateway_dep)


class CreateInspectionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    technician_id: str = Field(alias="technicianId", min_length=1, max_length=128)
    site_id: str = Field(alias="siteId", min_length=1, max_length=128)


class WorkflowActionBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: WorkflowAction
    note: str | None = Field(default=None, max_length=4000)
    metadata: dict[str, Any] | None = None
    idempotency_key: str | None = Field(default=None, alias="idempotencyKey", max_length=256)


def _not_found(inspection_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Inspection {inspection_id} not found",
    )


@router.post("/inspections", status_code=status.HTTP_201_CREATED)
async def create_inspection(
    req: CreateInspectionRequest,
    _=AUTH_DEP,
    gateway: RealtimeGateway = GATEWAY_DEP,
) -> dict[str, Any]:
    inspection = await asyncio.to_thread(
        gateway.store.create_inspection,
        technician_id=req.technician_id,
        site_id=req.site_id,
    )
    log.info("inspection_created", extra={"payload": {"inspection_id": inspection.id}})
    return inspection.to_dict()


@router.post("/inspections/{inspection_id}/workflow-actions")
async def run_workflow_action(
    inspection_id: str,
    body: WorkflowActionBody,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    _=AUTH_DEP,
    gateway: RealtimeGateway = GATEWAY_DEP,
) -> dict[str, Any]:
    inspection = await asyncio.to_thread(gateway.store.get_inspection, inspection_id)
    if inspection is None:
        raise _not_found(inspection_id)

    result = await gateway.engine.run_action(
        WorkflowActionRequest(
            inspection_id=inspection_id,
            action=body.action,
            note=body.note,
            metadata=body.metadata,
            idempotency_key=body.idempotency_key or idempotency_key,
        )
    )
    try:
        event = await asyncio.to_thread(
            gateway.store.append_workflow_event,
            inspection_id,
            NewWorkflowEvent(
                action=body.action,
                status=result.status,
                result_message=result.result_message,
                note=body.note,
                metadata=body.metadata,
                external_reference_id=result.external_reference_id,
            ),
        )
    except NotFoundError as e:
        raise _not_found(inspection_id) from e

    return {"event": event.to_dict(), "result": result.to_dict()}


@router.get("/inspections/{inspection_id}/workflow-events")
async def list_workflow_events(
    inspection_id: str,
    _=AUTH_DEP,
    gateway: RealtimeGateway = GATEWAY_DEP,
) -> dict[str, Any]:
    inspection = await asyncio.to_thread(gateway.store.get_inspection, inspection_id)
    if inspection is None:
        raise _not_found(inspection_id)
    events = await asyncio.to_thread(gateway.store.list_workflow_events, inspection_id)
    return {"inspectionId": inspection_id, "events": [e.to_dict() for e in events]}
