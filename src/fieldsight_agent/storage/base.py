"""
Контракт слоя данных (data-access collaborator).

Движок хранения является внешним коллаборатором: in-memory (по умолчанию) или SQL (SQLAlchemy).
Шлюзу нужны только: найти инспекцию и дописать событие workflow (append-only журнал).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from fieldsight_agent.domain.enums import InspectionStatus, WorkflowAction, WorkflowStatus


@dataclass
class WorkflowEvent:
    id: str
    action: WorkflowAction
    status: WorkflowStatus
    result_message: str
    created_at: datetime
    note: str | None = None
    metadata: dict[str, Any] | None = None
    external_reference_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "action": self.action.value,
            "note": self.note,
            "metadata": self.metadata,
            "status": self.status.value,
            "resultMessage": self.result_message,
            "externalReferenceId": self.external_reference_id,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class NewWorkflowEvent:
    """
    Событие до записи (id и created_at назначает хранилище).
    """

    action: WorkflowAction
    status: WorkflowStatus
    result_message: str
    note: str | None = None
    metadata: dict[str, Any] | None = None
    external_reference_id: str | None = None


@dataclass
class Inspection:
    id: str
    technician_id: str
    site_id: str
    status: InspectionStatus
    created_at: datetime
    workflow_events: list[WorkflowEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "technicianId": self.technician_id,
            "siteId": self.site_id,
            "status": self.status.value,
            "timestamp": self.created_at.isoformat(),
            "workflowEvents": [e.to_dict() for e in self.workflow_events],
        }


class InspectionStore(Protocol):
    """
    Контракт хранилища инспекций. Методы синхронные;
    из async-кода вызываются через asyncio.to_thread.
    """

    def create_inspection(self, *, technician_id: str, site_id: str) -> Inspection: ...

    def get_inspection(self, inspection_id: str) -> Inspection | None: ...

    def append_workflow_event(self, inspection_id: str, event: NewWorkflowEvent) -> WorkflowEvent:
        """Дописать событие. NotFoundError, если инспекции нет."""
        ...

    def list_workflow_events(self, inspection_id: str) -> list[WorkflowEvent]: ...
