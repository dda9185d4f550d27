"""
Репозитории (DAO слой) и SQL-реализация InspectionStore.

Правила:
- В репозиториях никакой бизнес-логики, только CRUD и запросы
- Наружу отдаём доменные dataclass'ы, а не ORM-объекты
"""

from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from fieldsight_agent.common.errors import NotFoundError
from fieldsight_agent.common.ids import new_uuid
from fieldsight_agent.common.time import utc_now
from fieldsight_agent.domain.enums import InspectionStatus

from .base import Inspection, NewWorkflowEvent, WorkflowEvent
from .db import db_session, make_session_factory
from .models import Base, InspectionRow, WorkflowEventRow


# =============================================================================
# INSPECTION REPOSITORY
# =============================================================================
class InspectionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, inspection_id: str) -> InspectionRow | None:
        return self.session.get(InspectionRow, inspection_id)

    def save(self, row: InspectionRow) -> None:
        self.session.add(row)


# =============================================================================
# WORKFLOW EVENT REPOSITORY
# =============================================================================
class WorkflowEventRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, row: WorkflowEventRow) -> None:
        self.session.add(row)

    def list_for_inspection(self, inspection_id: str) -> list[WorkflowEventRow]:
        stmt = (
            select(WorkflowEventRow)
            .where(WorkflowEventRow.inspection_id == inspection_id)
            .order_by(WorkflowEventRow.created_at)
        )
        return list(self.session.scalars(stmt))


def _event_from_row(row: WorkflowEventRow) -> WorkflowEvent:
    return WorkflowEvent(
        id=row.id,
        action=row.action,
        status=row.status,
        result_message=row.result_message,
        created_at=row.created_at,
        note=row.note,
        metadata=row.event_metadata,
        external_reference_id=row.external_reference_id,
    )


def _inspection_from_row(row: InspectionRow) -> Inspection:
    return Inspection(
        id=row.id,
        technician_id=row.technician_id,
        site_id=row.site_id,
        status=row.status,
        created_at=row.created_at,
        workflow_events=[_event_from_row(e) for e in row.workflow_events],
    )


# =============================================================================
# SQL STORE
# =============================================================================
class SqlInspectionStore:
    def __init__(self, engine: Engine, *, create_schema: bool = True) -> None:
        self._factory = make_session_factory(engine)
        if create_schema:
            # Автосоздание таблиц в dev (без ручных миграций)
            Base.metadata.create_all(engine)

    def create_inspection(self, *, technician_id: str, site_id: str) -> Inspection:
        row = InspectionRow(
            id=new_uuid(),
            technician_id=technician_id,
            site_id=site_id,
            status=InspectionStatus.in_progress,
            created_at=utc_now(),
        )
        with db_session(self._factory) as s:
            InspectionRepository(s).save(row)
            s.flush()
            return _inspection_from_row(row)

    def get_inspection(self, inspection_id: str) -> Inspection | None:
        with db_session(self._factory) as s:
            row = InspectionRepository(s).get(inspection_id)
            return _inspection_from_row(row) if row else None

    def append_workflow_event(self, inspection_id: str, event: NewWorkflowEvent) -> WorkflowEvent:
        with db_session(self._factory) as s:
            if InspectionRepository(s).get(inspection_id) is None:
                raise NotFoundError(f"Inspection {inspection_id} not found")
            row = WorkflowEventRow(
                id=new_uuid(),
                inspection_id=inspection_id,
                action=event.action,
                status=event.status,
                note=event.note,
                event_metadata=event.metadata,
                result_message=event.result_message,
                external_reference_id=event.external_reference_id,
                created_at=utc_now(),
            )
            WorkflowEventRepository(s).add(row)
            s.flush()
            return _event_from_row(row)

    def list_workflow_events(self, inspection_id: str) -> list[WorkflowEvent]:
        with db_session(self._factory) as s:
            if InspectionRepository(s).get(inspection_id) is None:
                raise NotFoundError(f"Inspection {inspection_id} not found")
            rows = WorkflowEventRepository(s).list_for_inspection(inspection_id)
            return [_event_from_row(r) for r in rows]
