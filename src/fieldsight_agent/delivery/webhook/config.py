"""
Конфигурация webhook для внешних workflow-действий.

Источник: Settings (ENV WORKFLOW_TICKET_* / WORKFLOW_NOTIFY_*).
Диалект провайдера: закрытый набор вариантов:
- GenericDialect
- JiraDialect (project key / issue type / ADF описание)
- ServiceNowDialect (таблица)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union
from urllib.parse import urlsplit, urlunsplit

from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.common.utils import clean_str
from fieldsight_agent.domain.enums import WebhookAuthType, WebhookProvider, WorkflowAction

JIRA_ISSUE_PATH = "/rest/api/3/issue"
SERVICENOW_TABLE_PATH = "/api/now/table"

DEFAULT_JIRA_PROJECT_KEY = "OPS"
DEFAULT_JIRA_ISSUE_TYPE = "Task"
DEFAULT_SERVICENOW_TABLE = "incident"

_ACTION_PREFIX = {
    WorkflowAction.create_ticket: "workflow_ticket_",
    WorkflowAction.notify_supervisor: "workflow_notify_",
}


@dataclass(frozen=True)
class GenericDialect:
    provider = WebhookProvider.generic


@dataclass(frozen=True)
class JiraDialect:
    project_key: str = DEFAULT_JIRA_PROJECT_KEY
    issue_type: str = DEFAULT_JIRA_ISSUE_TYPE
    use_adf: bool = True

    provider = WebhookProvider.jira


@dataclass(frozen=True)
class ServiceNowDialect:
    table: str = DEFAULT_SERVICENOW_TABLE

    provider = WebhookProvider.servicenow


Dialect = Union[GenericDialect, JiraDialect, ServiceNowDialect]


@dataclass(frozen=True)
class WebhookAuth:
    type: WebhookAuthType = WebhookAuthType.none
    token: str | None = None
    username: str | None = None
    password: str | None = None


@dataclass(frozen=True)
class WebhookConfig:
    url: str | None
    dialect: Dialect = field(default_factory=GenericDialect)
    auth: WebhookAuth = field(default_factory=WebhookAuth)

    @property
    def provider(self) -> WebhookProvider:
        return self.dialect.provider

    @property
    def host(self) -> str:
        return urlsplit(self.url or "").netloc


def parse_provider(value: str | None) -> WebhookProvider:
    raw = (value or "").strip().lower()
    try:
        return WebhookProvider(raw)
    except ValueError:
        return WebhookProvider.generic


def parse_auth_type(value: str | None) -> WebhookAuthType:
    raw = (value or "").strip().lower()
    try:
        return WebhookAuthType(raw)
    except ValueError:
        return WebhookAuthType.none


def parse_bool(value: str | None, default: bool) -> bool:
    raw = (value or "").strip().lower()
    if raw in {"true", "1", "yes"}:
        return True
    if raw in {"false", "0", "no"}:
        return False
    return default


def normalize_url(raw_url: str | None, dialect: Dialect) -> str | None:
    """
    Jira: пустой путь -> /rest/api/3/issue.
    ServiceNow: голый /api/now/table -> /api/now/table/<table>.
    """
    if not raw_url:
        return None
    try:
        parts = urlsplit(raw_url)
    except ValueError:
        return raw_url
    if not parts.scheme or not parts.netloc:
        return raw_url

    path = parts.path
    if isinstance(dialect, JiraDialect) and path.strip() in ("", "/"):
        path = JIRA_ISSUE_PATH
    elif isinstance(dialect, ServiceNowDialect) and path in (
        SERVICENOW_TABLE_PATH,
        SERVICENOW_TABLE_PATH + "/",
    ):
        path = f"{SERVICENOW_TABLE_PATH}/{dialect.table}"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def resolve_webhook_config(
    action: WorkflowAction,
    metadata: dict[str, Any] | None = None,
    settings: Settings | None = None,
) -> WebhookConfig:
    """
    Собирает конфиг webhook для действия.
    metadata["workflowProvider"] переопределяет провайдера из ENV.
    """
    s = settings or get_settings()
    prefix = _ACTION_PREFIX.get(action)
    if prefix is None:
        raise ValueError(f"action {action.value} is not delivered via webhook")

    def _read(name: str) -> str | None:
        return clean_str(getattr(s, prefix + name, None))

    meta_provider = clean_str((metadata or {}).get("workflowProvider"))
    provider = parse_provider(meta_provider or _read("provider"))

    dialect: Dialect
    if provider == WebhookProvider.jira:
        dialect = JiraDialect(
            project_key=_read("jira_project_key") or DEFAULT_JIRA_PROJECT_KEY,
            issue_type=_read("jira_issue_type") or DEFAULT_JIRA_ISSUE_TYPE,
            use_adf=parse_bool(_read("jira_use_adf"), True),
        )
    elif provider == WebhookProvider.servicenow:
        dialect = ServiceNowDialect(table=_read("servicenow_table") or DEFAULT_SERVICENOW_TABLE)
    else:
        dialect = GenericDialect()

    auth = WebhookAuth(
        type=parse_auth_type(_read("auth_type")),
        token=_read("auth_token"),
        username=_read("auth_username"),
        password=_read("auth_password"),
    )
    return WebhookConfig(url=normalize_url(_read("webhook_url"), dialect), dialect=dialect, auth=auth)
