"""
Движок доставки workflow-действий.

Поток:
1) ключ идемпотентности (явный -> metadata.idempotencyKey -> новый uuid)
2) completed-результат в кэше -> отдаём тот же (неизменяемый) результат без повторной доставки
3) внутренние действия (log_issue / add_to_history): локально
4) внешние (create_ticket / notify_supervisor):
   - webhook не настроен -> локальный completed с ref ticket_<uuid> / notification_<uuid>
   - иначе POST с ретраями, разбор ответа
5) completed кэшируем, failed: нет

HTTP-попытка блокирующая (requests) и уходит в поток; кэш трогаем только из event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.common.ids import new_idempotency_key, new_reference_id, new_request_id
from fieldsight_agent.common.logging import get_project_logger
from fieldsight_agent.common.metrics import (
    WORKFLOW_IDEMPOTENT_REPLAYS_TOTAL,
    record_webhook_attempt,
    record_workflow_action,
)
from fieldsight_agent.common.time import utc_now_iso
from fieldsight_agent.common.utils import clean_str
from fieldsight_agent.domain.enums import WorkflowAction

from .base import DeliveryContext, WorkflowActionRequest, WorkflowActionResult
from .idempotency import IdempotencyCache
from .results import completed_result, failed_result
from .retry import DeliveryError, RetryPolicy, run_with_retry
from .webhook.config import WebhookConfig, resolve_webhook_config
from .webhook.payloads import build_payload
from .webhook.response import extract_reference_id, extract_result_message
from .webhook.sender import WebhookResponse, post_json

log = get_project_logger()

_LOCAL_FALLBACK = {
    WorkflowAction.create_ticket: ("ticket", "Ticket created locally (no webhook configured)."),
    WorkflowAction.notify_supervisor: (
        "notification",
        "Supervisor notification queued locally (no webhook configured).",
    ),
}


def resolve_idempotency_key(req: WorkflowActionRequest) -> str:
    explicit = clean_str(req.idempotency_key)
    if explicit:
        return explicit
    from_meta = clean_str((req.metadata or {}).get("idempotencyKey"))
    if from_meta:
        return from_meta
    return new_idempotency_key()


class WorkflowDeliveryEngine:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        cache: IdempotencyCache | None = None,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        s = settings or get_settings()
        self.settings = s
        self.cache = cache or IdempotencyCache(
            ttl_sec=s.workflow_idempotency_ttl_sec,
            max_entries=s.workflow_idempotency_max_entries,
        )
        self.policy = policy or RetryPolicy(
            max_attempts=s.workflow_max_attempts,
            base_delay_ms=s.workflow_retry_base_ms,
            jitter_ms=s.workflow_retry_jitter_ms,
        )
        self.request_timeout_sec = float(s.workflow_request_timeout_sec)
        self._sleep = sleep

    async def run_action(self, req: WorkflowActionRequest) -> WorkflowActionResult:
        key = resolve_idempotency_key(req)

        cached = self.cache.get(key)
        if cached is not None:
            WORKFLOW_IDEMPOTENT_REPLAYS_TOTAL.inc()
            log.info(
                "workflow_action_replayed",
                extra={
                    "payload": {
                        "inspection_id": req.inspection_id,
                        "action": req.action.value,
                        "idempotency_key": key,
                    }
                },
            )
            return cached

        if req.action == WorkflowAction.log_issue:
            note = clean_str(req.note)
            msg = f"Issue logged: {req.note}" if note else "Issue logged for this inspection."
            result = completed_result(msg)
        elif req.action == WorkflowAction.add_to_history:
            result = completed_result("Inspection update added to technician history.")
        else:
            result = await self._deliver_external(req, key)

        if result.ok:
            self.cache.put(key, result)

        record_workflow_action(action=req.action.value, status=result.status.value)
        log.info(
            "workflow_action_done",
            extra={
                "payload": {
                    "inspection_id": req.inspection_id,
                    "action": req.action.value,
                    "status": result.status.value,
                    "external_reference_id": result.external_reference_id,
                    "idempotency_key": key,
                }
            },
        )
        return result

    async def _deliver_external(self, req: WorkflowActionRequest, key: str) -> WorkflowActionResult:
        ref_prefix, local_message = _LOCAL_FALLBACK[req.action]
        config = resolve_webhook_config(req.action, req.metadata, self.settings)
        if not config.url:
            return completed_result(local_message, new_reference_id(ref_prefix))

        ctx = DeliveryContext(
            idempotency_key=key,
            request_id=new_request_id(),
            requested_at=utc_now_iso(),
        )
        payload = build_payload(config, req, ctx)

        try:
            resp = await run_with_retry(
                lambda attempt: self._attempt(config, payload, key),
                policy=self.policy,
                sleep=self._sleep,
                log_context={
                    "inspection_id": req.inspection_id,
                    "action": req.action.value,
                    "provider": config.provider.value,
                },
            )
        except DeliveryError as e:
            return failed_result(f"Workflow webhook failed: {e.message}")

        reference = extract_reference_id(resp.body_json) or new_reference_id(ref_prefix)
        message = (
            extract_result_message(resp.body_json)
            or f"Workflow action delivered to {config.host} ({config.provider.value})."
        )
        return completed_result(message, reference)

    async def _attempt(self, config: WebhookConfig, payload: dict, key: str) -> WebhookResponse:
        provider = config.provider.value
        try:
            resp = await asyncio.to_thread(
                post_json,
                config,
                payload,
                idempotency_key=key,
                timeout_sec=self.request_timeout_sec,
            )
        except DeliveryError as e:
            record_webhook_attempt(provider=provider, outcome="retriable" if e.retriable else "fatal")
            raise
        record_webhook_attempt(provider=provider, outcome="ok")
        log.info(
            "workflow_webhook_delivered",
            extra={
                "payload": {
                    "provider": provider,
                    "host": config.host,
                    "status_code": resp.status_code,
                    "idempotency_key": key,
                }
            },
        )
        return resp
