"""
Построение тела webhook по диалекту провайдера.
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit

from fieldsight_agent.common.utils import clean_str
from fieldsight_agent.delivery.base import DeliveryContext, WorkflowActionRequest

from .config import SERVICENOW_TABLE_PATH, JiraDialect, ServiceNowDialect, WebhookConfig

SERVICENOW_SHORT_DESCRIPTION_MAX = 160

_LABEL_UNSAFE_RE = re.compile(r"[^a-z0-9_-]")


def build_payload(
    config: WebhookConfig, req: WorkflowActionRequest, ctx: DeliveryContext
) -> dict[str, Any]:
    dialect = config.dialect
    if isinstance(dialect, JiraDialect):
        return _jira_payload(dialect, req, ctx)
    if isinstance(dialect, ServiceNowDialect):
        return _servicenow_payload(dialect, config.url, req, ctx)
    return _generic_payload(req, ctx)


def _generic_payload(req: WorkflowActionRequest, ctx: DeliveryContext) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "inspectionId": req.inspection_id,
        "action": req.action.value,
        "note": req.note,
        "metadata": req.metadata,
        "idempotencyKey": ctx.idempotency_key,
        "requestId": ctx.request_id,
        "requestedAt": ctx.requested_at,
    }
    return {k: v for k, v in payload.items() if v is not None}


def _source_label(metadata: dict[str, Any] | None) -> str:
    source = clean_str((metadata or {}).get("source"))
    if not source:
        return "app"
    return _LABEL_UNSAFE_RE.sub("_", source.lower())


def jira_adf_description(req: WorkflowActionRequest, ctx: DeliveryContext) -> dict[str, Any]:
    """
    Описание в формате Atlassian Document Format (два абзаца).
    """
    action = req.action.value
    primary = clean_str(req.note) or f"Inspection {req.inspection_id} requires action {action}."
    trailer = f"Inspection: {req.inspection_id} | Action: {action} | Requested: {ctx.requested_at}"
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": primary}]},
            {"type": "paragraph", "content": [{"type": "text", "text": trailer}]},
        ],
    }


def _jira_payload(
    dialect: JiraDialect, req: WorkflowActionRequest, ctx: DeliveryContext
) -> dict[str, Any]:
    action = req.action.value
    note = clean_str(req.note)
    summary = note or f"Workflow {action} for inspection {req.inspection_id}"
    if dialect.use_adf:
        description: Any = jira_adf_description(req, ctx)
    else:
        description = note or f"Inspection {req.inspection_id} requires {action}."

    return {
        "fields": {
            "project": {"key": dialect.project_key},
            "issuetype": {"name": dialect.issue_type},
            "summary": summary,
            "description": description,
            "labels": ["fieldsightlive", action, _source_label(req.metadata)],
        },
        "metadata": {
            "inspectionId": req.inspection_id,
            "action": action,
            "requestedAt": ctx.requested_at,
            "idempotencyKey": ctx.idempotency_key,
            "requestId": ctx.request_id,
            "context": req.metadata or {},
        },
    }


def _servicenow_payload(
    dialect: ServiceNowDialect,
    url: str | None,
    req: WorkflowActionRequest,
    ctx: DeliveryContext,
) -> dict[str, Any]:
    action = req.action.value
    note = clean_str(req.note)
    short = note or f"Workflow {action} requested for inspection {req.inspection_id}"
    record = {
        "short_description": short[:SERVICENOW_SHORT_DESCRIPTION_MAX],
        "description": note or f"Inspection {req.inspection_id} requires action {action}.",
        "category": "operations",
        "subcategory": "fieldsightlive",
        "u_inspection_id": req.inspection_id,
        "u_workflow_action": action,
        "u_idempotency_key": ctx.idempotency_key,
        "u_request_id": ctx.request_id,
        "u_requested_at": ctx.requested_at,
        "u_metadata": req.metadata or {},
    }

    # табличный endpoint принимает запись как есть, прокси ждёт обёртку
    path = urlsplit(url or "").path
    if path.startswith(SERVICENOW_TABLE_PATH + "/"):
        return record
    return {"table": dialect.table, "record": record}
