from __future__ import annotations

import pytest

from fieldsight_agent.common.config import Settings
from fieldsight_agent.delivery.webhook.config import (
    GenericDialect,
    JiraDialect,
    ServiceNowDialect,
    normalize_url,
    parse_auth_type,
    parse_bool,
    parse_provider,
    resolve_webhook_config,
)
from fieldsight_agent.domain.enums import WebhookAuthType, WebhookProvider, WorkflowAction


def test_parse_helpers_fall_back_to_safe_defaults() -> None:
    assert parse_provider(None) == WebhookProvider.generic
    assert parse_provider(" JIRA ") == WebhookProvider.jira
    assert parse_provider("zendesk") == WebhookProvider.generic
    assert parse_auth_type("Bearer") == WebhookAuthType.bearer
    assert parse_auth_type("oauth") == WebhookAuthType.none


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("1", True), ("YES", True), ("false", False), ("0", False), ("no", False)],
)
def test_parse_bool(raw: str, expected: bool) -> None:
    assert parse_bool(raw, not expected) is expected


def test_parse_bool_unknown_value_keeps_default() -> None:
    assert parse_bool(None, True) is True
    assert parse_bool("maybe", False) is False


def test_normalize_url_jira_defaults_issue_path() -> None:
    assert (
        normalize_url("https://acme.atlassian.net", JiraDialect())
        == "https://acme.atlassian.net/rest/api/3/issue"
    )
    assert (
        normalize_url("https://acme.atlassian.net/", JiraDialect())
        == "https://acme.atlassian.net/rest/api/3/issue"
    )
    assert (
        normalize_url("https://acme.atlassian.net/custom/hook", JiraDialect())
        == "https://acme.atlassian.net/custom/hook"
    )


def test_normalize_url_servicenow_appends_table() -> None:
    dialect = ServiceNowDialect(table="u_field_tasks")
    assert (
        normalize_url("https://acme.service-now.com/api/now/table", dialect)
        == "https://acme.service-now.com/api/now/table/u_field_tasks"
    )
    assert (
        normalize_url("https://acme.service-now.com/api/now/table/", dialect)
        == "https://acme.service-now.com/api/now/table/u_field_tasks"
    )
    assert (
        normalize_url("https://proxy.local/servicenow", dialect)
        == "https://proxy.local/servicenow"
    )


def test_normalize_url_keeps_generic_and_unparseable_urls() -> None:
    assert normalize_url("https://hooks.local/x?a=1", GenericDialect()) == "https://hooks.local/x?a=1"
    assert normalize_url("not a url", JiraDialect()) == "not a url"
    assert normalize_url(None, GenericDialect()) is None


def test_resolve_uses_action_specific_settings() -> None:
    s = Settings()
    s.workflow_ticket_webhook_url = "https://acme.atlassian.net"
    s.workflow_ticket_provider = "jira"
    s.workflow_ticket_jira_project_key = "FS"
    s.workflow_ticket_jira_issue_type = "Bug"
    s.workflow_ticket_jira_use_adf = "false"
    s.workflow_ticket_auth_type = "basic"
    s.workflow_ticket_auth_username = " bot "
    s.workflow_ticket_auth_password = " p@ss "
    s.workflow_notify_webhook_url = None

    ticket = resolve_webhook_config(WorkflowAction.create_ticket, None, s)
    assert ticket.url == "https://acme.atlassian.net/rest/api/3/issue"
    assert ticket.provider == WebhookProvider.jira
    assert ticket.dialect == JiraDialect(project_key="FS", issue_type="Bug", use_adf=False)
    assert ticket.auth.type == WebhookAuthType.basic
    assert ticket.auth.username == "bot"
    assert ticket.auth.password == "p@ss"
    assert ticket.host == "acme.atlassian.net"

    notify = resolve_webhook_config(WorkflowAction.notify_supervisor, None, s)
    assert notify.url is None
    assert notify.provider == WebhookProvider.generic


def test_metadata_provider_overrides_settings() -> None:
    s = Settings()
    s.workflow_notify_webhook_url = "https://acme.service-now.com/api/now/table"
    s.workflow_notify_provider = "generic"
    s.workflow_notify_servicenow_table = None

    cfg = resolve_webhook_config(
        WorkflowAction.notify_supervisor, {"workflowProvider": "servicenow"}, s
    )
    assert cfg.dialect == ServiceNowDialect(table="incident")
    assert cfg.url == "https://acme.service-now.com/api/now/table/incident"


def test_internal_actions_have_no_webhook() -> None:
    with pytest.raises(ValueError):
        resolve_webhook_config(WorkflowAction.log_issue, None, Settings())


def test_blank_password_is_treated_as_unset() -> None:
    s = Settings()
    s.workflow_notify_webhook_url = "https://hooks.example.com/notify"
    s.workflow_notify_auth_type = "basic"
    s.workflow_notify_auth_username = "bot"
    s.workflow_notify_auth_password = "   "

    cfg = resolve_webhook_config(WorkflowAction.notify_supervisor, None, s)
    assert cfg.auth.username == "bot"
    assert cfg.auth.password is None
