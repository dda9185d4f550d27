"""
Базовые типы доставки workflow-действий.

Назначение:
- единый запрос/результат для всех каналов (локально / generic webhook / Jira / ServiceNow)
- запрос неизменяем после отправки
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fieldsight_agent.domain.enums import WorkflowAction, WorkflowStatus


@dataclass(frozen=True)
class WorkflowActionRequest:
    """
    Запрос workflow-действия по инспекции.
    """

    inspection_id: str
    action: WorkflowAction
    note: str | None = None
    metadata: dict[str, Any] | None = None
    idempotency_key: str | None = None


@dataclass(frozen=True)
class WorkflowActionResult:
    """
    Результат доставки. Ровно один на логический запрос;
    completed-результаты кэшируются под ключом идемпотентности.
    """

    status: WorkflowStatus
    result_message: str
    external_reference_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == WorkflowStatus.completed

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status.value, "resultMessage": self.result_message}
        if self.external_reference_id:
            out["externalReferenceId"] = self.external_reference_id
        return out


@dataclass(frozen=True)
class DeliveryContext:
    """
    Служебные поля одной доставки (уходят в payload и заголовки).
    """

    idempotency_key: str
    request_id: str
    requested_at: str
