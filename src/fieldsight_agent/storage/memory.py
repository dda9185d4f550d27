"""
In-memory хранилище инспекций (dev / тесты / STORAGE_BACKEND=memory).
"""

from __future__ import annotations

import threading

from fieldsight_agent.common.errors import NotFoundError
from fieldsight_agent.common.ids import new_uuid
from fieldsight_agent.common.time import utc_now
from fieldsight_agent.domain.enums import InspectionStatus

from .base import Inspection, NewWorkflowEvent, WorkflowEvent


class MemoryInspectionStore:
    def __init__(self) -> None:
        # вызывается из worker-потоков asyncio.to_thread
        self._lock = threading.Lock()
        self._inspections: dict[str, Inspection] = {}

    def create_inspection(self, *, technician_id: str, site_id: str) -> Inspection:
        inspection = Inspection(
            id=new_uuid(),
            technician_id=technician_id,
            site_id=site_id,
            status=InspectionStatus.in_progress,
            created_at=utc_now(),
        )
        with self._lock:
            self._inspections[inspection.id] = inspection
        return inspection

    def get_inspection(self, inspection_id: str) -> Inspection | None:
        with self._lock:
            return self._inspections.get(inspection_id)

    def append_workflow_event(self, inspection_id: str, event: NewWorkflowEvent) -> WorkflowEvent:
        with self._lock:
            inspection = self._inspections.get(inspection_id)
            if inspection is None:
                raise NotFoundError(f"Inspection {inspection_id} not found")
            stored = WorkflowEvent(
                id=new_uuid(),
                action=event.action,
                status=event.status,
                result_message=event.result_message,
                created_at=utc_now(),
                note=event.note,
                metadata=dict(event.metadata) if event.metadata else None,
                external_reference_id=event.external_reference_id,
            )
            inspection.workflow_events.append(stored)
            return stored

    def list_workflow_events(self, inspection_id: str) -> list[WorkflowEvent]:
        with self._lock:
            inspection = self._inspections.get(inspection_id)
            if inspection is None:
                raise NotFoundError(f"Inspection {inspection_id} not found")
            return list(inspection.workflow_events)
