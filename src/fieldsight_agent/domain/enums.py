"""
Доменные перечисления (enum).

Используются во всей системе:
- типы workflow-действий и их статусы
- диалекты webhook-провайдеров и режимы авторизации
- классы ошибок доставки
"""

from __future__ import annotations

import enum


class WorkflowAction(str, enum.Enum):
    """
    Workflow-действие по инспекции.
    """

    log_issue = "log_issue"
    create_ticket = "create_ticket"
    notify_supervisor = "notify_supervisor"
    add_to_history = "add_to_history"


# Действия, которые уходят во внешние системы (тикеты/уведомления)
EXTERNAL_ACTIONS = frozenset({WorkflowAction.create_ticket, WorkflowAction.notify_supervisor})


class WorkflowStatus(str, enum.Enum):
    completed = "completed"
    failed = "failed"


class WebhookProvider(str, enum.Enum):
    """
    Диалект payload для внешней системы.
    """

    generic = "generic"
    jira = "jira"
    servicenow = "servicenow"


class WebhookAuthType(str, enum.Enum):
    none = "none"
    bearer = "bearer"
    basic = "basic"


class DeliveryErrorKind(str, enum.Enum):
    """
    Класс ошибки доставки webhook (определяется в точке отказа).
    """

    timeout = "timeout"
    connection_failed = "connection_failed"
    http_status = "http_status"
    auth_config_missing = "auth_config_missing"
    invalid_request = "invalid_request"


class InspectionStatus(str, enum.Enum):
    in_progress = "in_progress"
    completed = "completed"


class ConfirmationDecision(str, enum.Enum):
    confirm = "confirm"
    cancel = "cancel"
