"""
Realtime-шлюз: владелец всего состояния WS-клиентов.

Жизненный цикл клиента:
- on_connect: регистрация, попытка открыть live-канал ассистента, сообщение connected
- on_message: rate limit / валидация / обработчик
- on_disconnect: дождаться голосовых workflow, удалить сессию, снять корзину rate limit,
  закрыть live-канал

Глобальных словарей нет, реестр, лимитер и кэш идемпотентности живут в полях этого объекта.
"""

from __future__ import annotations

from typing import Any

from fieldsight_agent.assistant.base import VisionAssistant
from fieldsight_agent.assistant.factory import build_assistant
from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.common.logging import get_realtime_logger
from fieldsight_agent.common.metrics import WS_CLIENTS
from fieldsight_agent.contracts.ws_events import ConnectedEvent, error_message
from fieldsight_agent.delivery.engine import WorkflowDeliveryEngine
from fieldsight_agent.storage.base import InspectionStore
from fieldsight_agent.storage.factory import build_inspection_store

from .rate_limiter import SlidingWindowRateLimiter
from .router import MessageRouter
from .session_registry import ClientSession, ClientSocket, SessionRegistry
from .voice_trigger import VoiceIntentTrigger

log = get_realtime_logger()

HANDLER_FAILED_TEXT = "Message could not be processed. Please try again."


class RealtimeGateway:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        assistant: VisionAssistant | None = None,
        store: InspectionStore | None = None,
        engine: WorkflowDeliveryEngine | None = None,
        limiter: SlidingWindowRateLimiter | None = None,
    ) -> None:
        s = settings or get_settings()
        self.settings = s
        self.assistant = assistant or build_assistant()
        self.store = store or build_inspection_store()
        self.engine = engine or WorkflowDeliveryEngine(settings=s)
        self.limiter = limiter or SlidingWindowRateLimiter(
            s.ws_rate_window_ms, s.ws_rate_max_messages
        )
        self.registry = SessionRegistry()
        self.voice_trigger = VoiceIntentTrigger(
            store=self.store,
            engine=self.engine,
            reply=self.registry.send,
            settings=s,
        )
        self.router = MessageRouter(
            registry=self.registry,
            limiter=self.limiter,
            assistant=self.assistant,
            voice_trigger=self.voice_trigger,
            settings=s,
        )

    async def on_connect(self, socket: ClientSocket) -> ClientSession:
        session = self.registry.register(socket)
        WS_CLIENTS.inc()

        try:
            enabled = await self.assistant.start_live_session(
                session.id, self.router.live_event_handler(session)
            )
        except Exception as e:
            log.warning(
                "live_session_start_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            enabled = False
        session.live_enabled = bool(enabled)
        log.info(
            "session_init",
            extra={"payload": {**session.log_context(), "live_enabled": session.live_enabled}},
        )
        if not session.live_enabled:
            log.warning("live_disabled_fallback_mode", extra={"payload": session.log_context()})

        await self.registry.send(session, ConnectedEvent(client_id=session.id).to_wire())
        return session

    async def on_message(self, session: ClientSession, raw: str | bytes) -> None:
        try:
            await self.router.handle_raw(session, raw)
        except Exception as e:
            # сбой одного сообщения не рвёт соединение
            log.error(
                "ws_handler_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            await self.registry.send(session, error_message(HANDLER_FAILED_TEXT))

    async def on_disconnect(self, session: ClientSession) -> None:
        if session.id not in self.registry:
            return
        # голосовой workflow доводим до конца на живом состоянии сессии
        await session.drain_workflows()
        if self.registry.unregister(session.id) is None:
            return
        WS_CLIENTS.dec()
        self.limiter.clear(session.id)
        try:
            await self.assistant.close_live_session(session.id)
        except Exception as e:
            log.warning(
                "live_session_close_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
        log.info("ws_client_disconnected", extra={"payload": session.log_context()})

    async def broadcast_to_session(self, session_id: str, data: dict[str, Any]) -> int:
        return await self.registry.broadcast_to_session(session_id, data)

    def stats(self) -> dict[str, int]:
        return {
            "connectedClients": len(self.registry),
            "liveSessionCount": self.assistant.live_session_count(),
            "fallbackClientCount": self.registry.fallback_count(),
            "bufferedAudioClients": self.registry.buffered_audio_count(),
            "rateTrackedClients": self.limiter.size(),
        }
