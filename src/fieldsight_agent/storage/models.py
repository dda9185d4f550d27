"""
ORM-модели базы данных.

Назначение:
- Инспекции (бизнес-запись, к которой привязывается WS-сессия)
- Append-only журнал workflow-событий
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from fieldsight_agent.common.time import utc_now
from fieldsight_agent.domain.enums import InspectionStatus, WorkflowAction, WorkflowStatus


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# INSPECTION
# =============================================================================
class InspectionRow(Base):
    __tablename__ = "inspections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    technician_id: Mapped[str] = mapped_column(String(128), nullable=False)
    site_id: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[InspectionStatus] = mapped_column(Enum(InspectionStatus), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    workflow_events: Mapped[list[WorkflowEventRow]] = relationship(
        back_populates="inspection",
        cascade="all, delete-orphan",
        order_by="WorkflowEventRow.created_at",
    )


# =============================================================================
# WORKFLOW EVENTS
# =============================================================================
class WorkflowEventRow(Base):
    __tablename__ = "workflow_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    inspection_id: Mapped[str] = mapped_column(ForeignKey("inspections.id"), nullable=False)

    action: Mapped[WorkflowAction] = mapped_column(Enum(WorkflowAction), nullable=False)
    status: Mapped[WorkflowStatus] = mapped_column(Enum(WorkflowStatus), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    result_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    external_reference_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    inspection: Mapped[InspectionRow] = relationship(back_populates="workflow_events")
