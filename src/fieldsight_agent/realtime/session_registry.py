"""
Реестр клиентских WS-сессий.

Сессия живёт ровно столько, сколько соединение.
Всё состояние клиента (аудио-буфер, контекст инспекции, debounce, ожидающее подтверждение)
хранится в ClientSession и уходит вместе с ней при unregister.

Мутации только из event loop, без локов; отправка в сокет сериализуется send_lock.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from fieldsight_agent.common.ids import new_client_id
from fieldsight_agent.common.logging import get_realtime_logger
from fieldsight_agent.common.metrics import record_ws_message
from fieldsight_agent.common.time import utc_ms
from fieldsight_agent.domain.enums import WorkflowAction

log = get_realtime_logger()


class ClientSocket(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass
class AudioBuffer:
    mime_type: str
    sample_rate: int
    chunks: list[str] = field(default_factory=list)


@dataclass
class VoiceIntentRecord:
    action: WorkflowAction
    at_ms: int


@dataclass
class PendingAction:
    """
    Внешнее действие, ожидающее голосового подтверждения.
    """

    action: WorkflowAction
    inspection_id: str
    note: str | None = None
    created_at_ms: int = field(default_factory=utc_ms)


@dataclass
class ClientSession:
    id: str
    socket: ClientSocket
    session_id: str | None = None
    live_enabled: bool = False
    audio_buffer: AudioBuffer | None = None
    inspection_context: str | None = None
    last_voice_intent: VoiceIntentRecord | None = None
    pending_action: PendingAction | None = None
    open: bool = True
    send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)
    workflow_tasks: set[asyncio.Task] = field(default_factory=set, repr=False)

    def log_context(self) -> dict[str, Any]:
        return {"client_id": self.id, "session_id": self.session_id}

    def take_audio_buffer(self) -> AudioBuffer | None:
        """Забрать буфер и сразу очистить (flush ровно один раз)."""
        buf, self.audio_buffer = self.audio_buffer, None
        return buf

    def track_workflow(self, task: asyncio.Task) -> None:
        self.workflow_tasks.add(task)
        task.add_done_callback(self.workflow_tasks.discard)

    async def drain_workflows(self) -> None:
        """
        Дождаться запущенных голосовых workflow.
        Доставка не отменяется при закрытии соединения, она доходит до результата.
        """
        while True:
            pending = [t for t in self.workflow_tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def release(self) -> None:
        self.open = False
        self.audio_buffer = None
        self.inspection_context = None
        self.last_voice_intent = None
        self.pending_action = None


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, ClientSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._sessions

    def register(self, socket: ClientSocket, *, client_id: str | None = None) -> ClientSession:
        session = ClientSession(id=client_id or new_client_id(), socket=socket)
        self._sessions[session.id] = session
        return session

    def unregister(self, client_id: str) -> ClientSession | None:
        session = self._sessions.pop(client_id, None)
        if session is not None:
            session.release()
        return session

    def get(self, client_id: str) -> ClientSession | None:
        return self._sessions.get(client_id)

    def sessions(self) -> list[ClientSession]:
        return list(self._sessions.values())

    # -------------------------------------------------------------------------
    # Отправка
    # -------------------------------------------------------------------------
    async def send(self, session: ClientSession, data: dict[str, Any]) -> bool:
        if not session.open:
            return False
        msg_type = str(data.get("type") or "unknown")
        log.info(
            "ws_outgoing",
            extra={"payload": {**session.log_context(), "type": msg_type}},
        )
        try:
            async with session.send_lock:
                await session.socket.send_text(json.dumps(data))
        except Exception as e:
            log.warning(
                "ws_send_failed",
                extra={"payload": {**session.log_context(), "type": msg_type, "err": str(e)[:200]}},
            )
            session.open = False
            return False
        record_ws_message(direction="out", msg_type=msg_type)
        return True

    async def send_to(self, client_id: str, data: dict[str, Any]) -> bool:
        session = self._sessions.get(client_id)
        if session is None:
            return False
        return await self.send(session, data)

    async def broadcast_to_session(self, session_id: str, data: dict[str, Any]) -> int:
        sent = 0
        for session in self.sessions():
            if session.session_id == session_id and await self.send(session, data):
                sent += 1
        return sent

    # -------------------------------------------------------------------------
    # Ожидающее подтверждение внешнего действия
    # -------------------------------------------------------------------------
    def set_pending(self, client_id: str, pending: PendingAction) -> None:
        session = self._sessions.get(client_id)
        if session is not None:
            session.pending_action = pending

    def confirm_pending(self, client_id: str) -> PendingAction | None:
        """Вернуть и снять ожидающее действие (вызывающий его исполняет)."""
        session = self._sessions.get(client_id)
        if session is None:
            return None
        pending, session.pending_action = session.pending_action, None
        return pending

    def cancel_pending(self, client_id: str) -> bool:
        session = self._sessions.get(client_id)
        if session is None or session.pending_action is None:
            return False
        session.pending_action = None
        return True

    # -------------------------------------------------------------------------
    # Статистика для /health
    # -------------------------------------------------------------------------
    def fallback_count(self) -> int:
        return sum(1 for s in self._sessions.values() if not s.live_enabled)

    def buffered_audio_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.audio_buffer is not None)
