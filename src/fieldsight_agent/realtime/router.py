"""
Маршрутизация входящих WS-сообщений.

Порядок для каждого сообщения:
1) rate limit (превышение -> error, состояние не меняется)
2) JSON + валидация контракта (ошибка -> error, соединение не закрываем)
3) обработчик по типу

Клиент всегда получает хотя бы один ответ на отказ (error или fallback-текст).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fieldsight_agent.assistant.base import AudioPayload, LiveEvent, LiveEventHandler, VisionAssistant
from fieldsight_agent.common.config import Settings, get_settings
from fieldsight_agent.common.errors import ValidationError
from fieldsight_agent.common.logging import get_realtime_logger
from fieldsight_agent.common.metrics import record_ws_message, record_ws_rejected
from fieldsight_agent.common.utils import concat_b64
from fieldsight_agent.contracts.ws_events import (
    AssistantChunkEvent,
    AudioMessage,
    AudioStreamEndMessage,
    IncomingMessage,
    InspectionContextMessage,
    InterruptMessage,
    JoinSessionMessage,
    LiveTranscriptEvent,
    VideoFrameMessage,
    assistant_text,
    error_message,
    parse_incoming,
)

from .rate_limiter import SlidingWindowRateLimiter
from .session_registry import AudioBuffer, ClientSession, SessionRegistry
from .voice_trigger import VoiceIntentTrigger

log = get_realtime_logger()

RATE_LIMIT_TEXT = "Rate limit exceeded. Slow down and try again."
INVALID_PAYLOAD_TEXT = "Invalid message payload."

FRAME_FAILED_TEXT = "I could not analyze that frame. Capture a clearer snapshot and try again."
AUDIO_CHUNK_FAILED_TEXT = "Audio stream interrupted. Keep push-to-talk pressed and try again."
NO_AUDIO_TEXT = "No audio was captured. Hold push-to-talk and speak, then release."
FALLBACK_AUDIO_FAILED_TEXT = "Audio processing failed. Please try again."
LIVE_TURN_FAILED_TEXT = "I could not complete that audio turn. Please repeat in one short sentence."
INTERRUPTED_TEXT = "Interrupted by user speech."


class MessageRouter:
    def __init__(
        self,
        *,
        registry: SessionRegistry,
        limiter: SlidingWindowRateLimiter,
        assistant: VisionAssistant,
        voice_trigger: VoiceIntentTrigger,
        settings: Settings | None = None,
    ) -> None:
        s = settings or get_settings()
        self.registry = registry
        self.limiter = limiter
        self.assistant = assistant
        self.voice_trigger = voice_trigger
        self.turn_timeout_sec = float(s.assistant_turn_timeout_sec)
        self.default_mime_type = s.ws_default_audio_mime_type
        self.default_sample_rate = int(s.ws_default_sample_rate)

    async def _send(self, session: ClientSession, data: dict[str, Any]) -> bool:
        return await self.registry.send(session, data)

    async def _ai(self, coro):
        return await asyncio.wait_for(coro, timeout=self.turn_timeout_sec)

    # -------------------------------------------------------------------------
    # Вход
    # -------------------------------------------------------------------------
    async def handle_raw(self, session: ClientSession, raw: str | bytes) -> None:
        if not self.limiter.allow(session.id):
            record_ws_rejected("rate_limited")
            await self._send(session, error_message(RATE_LIMIT_TEXT))
            return

        try:
            msg = parse_incoming(json.loads(raw))
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError наследует ValueError
            record_ws_rejected("invalid")
            log.warning(
                "ws_invalid_message",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            await self._send(session, error_message(INVALID_PAYLOAD_TEXT))
            return

        log.info("ws_incoming", extra={"payload": {**session.log_context(), "type": msg.type}})
        record_ws_message(direction="in", msg_type=msg.type)
        await self.dispatch(session, msg)

    async def dispatch(self, session: ClientSession, msg: IncomingMessage) -> None:
        if isinstance(msg, JoinSessionMessage):
            session.session_id = msg.session_id
            log.info("ws_session_joined", extra={"payload": session.log_context()})
        elif isinstance(msg, VideoFrameMessage):
            await self.on_video_frame(session, msg)
        elif isinstance(msg, AudioMessage):
            await self.on_audio(session, msg)
        elif isinstance(msg, AudioStreamEndMessage):
            await self.on_audio_stream_end(session)
        elif isinstance(msg, InterruptMessage):
            log.info("ws_interrupt", extra={"payload": session.log_context()})
            await self.on_interrupt(session)
        elif isinstance(msg, InspectionContextMessage):
            session.inspection_context = msg.inspection_id
            await self._send(session, assistant_text(f"Inspection context set to {msg.inspection_id}"))

    # -------------------------------------------------------------------------
    # Обработчики
    # -------------------------------------------------------------------------
    async def on_video_frame(self, session: ClientSession, msg: VideoFrameMessage) -> None:
        try:
            resp = await self._ai(self.assistant.analyze_video_frame(msg))
        except Exception as e:
            log.error(
                "video_frame_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            await self._send(session, assistant_text(FRAME_FAILED_TEXT))
            return
        await self._send(session, resp.to_wire())

    async def on_audio(self, session: ClientSession, msg: AudioMessage) -> None:
        if not session.live_enabled:
            # fallback: копим до audio_stream_end
            if session.audio_buffer is None:
                session.audio_buffer = AudioBuffer(
                    mime_type=msg.mime_type or self.default_mime_type,
                    sample_rate=msg.sample_rate or self.default_sample_rate,
                )
            session.audio_buffer.chunks.append(msg.audio)
            return

        payload = AudioPayload.from_message(
            msg, mime_type=self.default_mime_type, sample_rate=self.default_sample_rate
        )
        try:
            await self._ai(self.assistant.send_audio_chunk(session.id, payload))
        except Exception as e:
            log.error(
                "audio_chunk_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            await self._send(session, assistant_text(AUDIO_CHUNK_FAILED_TEXT))

    async def on_audio_stream_end(self, session: ClientSession) -> None:
        if session.live_enabled:
            try:
                await self._ai(self.assistant.end_audio_stream(session.id))
            except Exception as e:
                log.error(
                    "audio_stream_end_failed",
                    extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
                )
                await self._send(session, assistant_text(LIVE_TURN_FAILED_TEXT))
            return

        buffered = session.take_audio_buffer()
        if buffered is None or not buffered.chunks:
            await self._send(session, assistant_text(NO_AUDIO_TEXT))
            return

        try:
            payload = AudioPayload(
                audio=concat_b64(buffered.chunks),
                mime_type=buffered.mime_type,
                sample_rate=buffered.sample_rate,
            )
            resp = await self._ai(self.assistant.analyze_audio(payload))
        except Exception as e:
            log.error(
                "fallback_audio_failed",
                extra={
                    "payload": {
                        **session.log_context(),
                        "chunks": len(buffered.chunks),
                        "err": str(e)[:200],
                    }
                },
            )
            await self._send(session, assistant_text(FALLBACK_AUDIO_FAILED_TEXT))
            return
        await self._send(session, resp.to_wire())

    async def on_interrupt(self, session: ClientSession) -> None:
        try:
            resp = await self._ai(self.assistant.handle_interrupt())
        except Exception as e:
            log.error(
                "interrupt_failed",
                extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
            )
            await self._send(session, assistant_text(INTERRUPTED_TEXT))
            return
        await self._send(session, resp.to_wire())

    # -------------------------------------------------------------------------
    # События live-канала ассистента
    # -------------------------------------------------------------------------
    def live_event_handler(self, session: ClientSession) -> LiveEventHandler:
        async def _on_event(event: LiveEvent) -> None:
            await self.forward_live_event(session, event)

        return _on_event

    async def forward_live_event(self, session: ClientSession, event: LiveEvent) -> None:
        if event.type == "chunk" and event.text:
            await self._send(session, AssistantChunkEvent(text_chunk=event.text).to_wire())
        elif event.type == "final" and event.text:
            await self._send(session, assistant_text(event.text))
        elif event.type == "interrupted":
            await self._send(session, assistant_text(event.text or INTERRUPTED_TEXT))
        elif event.type == "error":
            log.warning(
                "live_event_error",
                extra={"payload": {**session.log_context(), "err": (event.message or "")[:200]}},
            )
        elif event.type == "transcript" and event.text:
            await self._send(
                session, LiveTranscriptEvent(speaker="user", text=event.text).to_wire()
            )
            # запуск workflow не ограничен таймаутом хода ассистента
            session.track_workflow(
                asyncio.create_task(self.voice_trigger.handle_transcript(session, event.text))
            )
