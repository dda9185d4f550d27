"""
Запуск workflow-действий по голосовому транскрипту.

Шаги:
1) классификация намерения (нет совпадения -> тихо выходим)
2) debounce: то же действие в окне VOICE_INTENT_DEBOUNCE_MS -> тихо выходим
3) нужен inspection_context сессии
4) инспекция должна существовать в хранилище
5) WorkflowDeliveryEngine.run_action
6) событие пишем в историю инспекции, клиенту: короткое резюме
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.common.errors import AppError
from fieldsight_agent.common.logging import get_realtime_logger
from fieldsight_agent.common.time import utc_ms
from fieldsight_agent.contracts.ws_events import assistant_text
from fieldsight_agent.delivery.base import WorkflowActionRequest, WorkflowActionResult
from fieldsight_agent.delivery.engine import WorkflowDeliveryEngine
from fieldsight_agent.domain.enums import WorkflowAction
from fieldsight_agent.storage.base import InspectionStore, NewWorkflowEvent

from .session_registry import ClientSession, VoiceIntentRecord
from .voice_intents import detect_workflow_intent

log = get_realtime_logger()

VOICE_SOURCE = "voice_intent"

Reply = Callable[[ClientSession, dict[str, Any]], Awaitable[Any]]


class VoiceIntentTrigger:
    def __init__(
        self,
        *,
        store: InspectionStore,
        engine: WorkflowDeliveryEngine,
        reply: Reply,
        settings: Settings | None = None,
        clock: Callable[[], int] = utc_ms,
    ) -> None:
        s = settings or get_settings()
        self.store = store
        self.engine = engine
        self.reply = reply
        self.debounce_ms = int(s.voice_intent_debounce_ms)
        self._clock = clock

    def _debounced(self, session: ClientSession, action: WorkflowAction) -> bool:
        now = self._clock()
        prev = session.last_voice_intent
        if prev is not None and prev.action == action and now - prev.at_ms < self.debounce_ms:
            return True
        session.last_voice_intent = VoiceIntentRecord(action=action, at_ms=now)
        return False

    async def handle_transcript(
        self, session: ClientSession, transcript: str
    ) -> WorkflowActionResult | None:
        action = detect_workflow_intent(transcript)
        if action is None:
            return None

        if self._debounced(session, action):
            log.info(
                "voice_intent_debounced",
                extra={"payload": {**session.log_context(), "action": action.value}},
            )
            return None

        inspection_id = session.inspection_context
        if not inspection_id:
            await self.reply(
                session,
                assistant_text("Workflow intent heard, but no active inspection context is set."),
            )
            return None

        try:
            inspection = await asyncio.to_thread(self.store.get_inspection, inspection_id)
            if inspection is None:
                await self.reply(
                    session,
                    assistant_text(
                        f"Workflow intent skipped because inspection {inspection_id} was not found."
                    ),
                )
                return None

            metadata = {"source": VOICE_SOURCE}
            result = await self.engine.run_action(
                WorkflowActionRequest(
                    inspection_id=inspection_id,
                    action=action,
                    note=transcript,
                    metadata=metadata,
                )
            )
            await asyncio.to_thread(
                self.store.append_workflow_event,
                inspection_id,
                NewWorkflowEvent(
                    action=action,
                    status=result.status,
                    result_message=result.result_message,
                    note=transcript,
                    metadata=metadata,
                    external_reference_id=result.external_reference_id,
                ),
            )
        except Exception as e:
            msg = e.message if isinstance(e, AppError) else (str(e) or "Unknown error")
            log.error(
                "voice_intent_failed",
                extra={"payload": {**session.log_context(), "action": action.value, "err": msg[:200]}},
            )
            await self.reply(session, assistant_text(f"Voice workflow execution failed: {msg}"))
            return None

        log.info(
            "voice_intent_executed",
            extra={
                "payload": {
                    **session.log_context(),
                    "inspection_id": inspection_id,
                    "action": action.value,
                    "status": result.status.value,
                }
            },
        )
        await self.reply(
            session,
            assistant_text(f"Voice workflow executed ({action.value}): {result.result_message}"),
        )
        return result
