"""
Утилиты для работы с результатами доставки.

Назначение:
- единообразные completed/failed результаты
"""

from __future__ import annotations

from fieldsight_agent.domain.enums import WorkflowStatus

from .base import WorkflowActionResult


def completed_result(message: str, reference_id: str | None = None) -> WorkflowActionResult:
    return WorkflowActionResult(
        status=WorkflowStatus.completed,
        result_message=message,
        external_reference_id=reference_id,
    )


def failed_result(message: str) -> WorkflowActionResult:
    return WorkflowActionResult(status=WorkflowStatus.failed, result_message=message)
