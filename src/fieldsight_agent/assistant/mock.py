"""
Mock-ассистент для тестов и dev.

Назначение:
- гонять шлюз без реальных вызовов AI
- предсказуемый результат
- live-канал по умолчанию недоступен (клиенты уходят в fallback-режим)
"""

from __future__ import annotations

from fieldsight_agent.common.utils import b64_decode
from fieldsight_agent.contracts.ws_events import VideoFrameMessage

from .base import AssistantResponse, AudioPayload, LiveEvent, LiveEventHandler

INTERRUPT_TEXT = "Stopped. Tell me what to inspect next and point camera at the target part."


class MockVisionAssistant:
    def __init__(self, *, live_enabled: bool = False) -> None:
        self.live_enabled = live_enabled
        self._handlers: dict[str, LiveEventHandler] = {}
        self._chunks: dict[str, list[AudioPayload]] = {}
        self.analyzed_audio: list[AudioPayload] = []

    async def start_live_session(self, client_id: str, on_event: LiveEventHandler) -> bool:
        if not self.live_enabled:
            return False
        self._handlers[client_id] = on_event
        self._chunks[client_id] = []
        return True

    async def send_audio_chunk(self, client_id: str, chunk: AudioPayload) -> None:
        if client_id not in self._handlers:
            raise RuntimeError("Live session not initialized")
        self._chunks[client_id].append(chunk)

    async def end_audio_stream(self, client_id: str) -> None:
        handler = self._handlers.get(client_id)
        if handler is None:
            raise RuntimeError("Live session not initialized")
        chunks = self._chunks.get(client_id) or []
        self._chunks[client_id] = []
        transcript = next((c.transcript for c in reversed(chunks) if c.transcript), None)
        if transcript:
            await handler(LiveEvent(type="transcript", text=transcript))
        await handler(LiveEvent(type="final", text=f"Received {len(chunks)} audio chunk(s)."))

    async def close_live_session(self, client_id: str) -> None:
        self._handlers.pop(client_id, None)
        self._chunks.pop(client_id, None)

    async def analyze_video_frame(self, msg: VideoFrameMessage) -> AssistantResponse:
        return AssistantResponse(
            text="Frame received. No visible faults detected; keep the camera steady.",
            needs_clarity=False,
        )

    async def analyze_audio(self, payload: AudioPayload) -> AssistantResponse:
        self.analyzed_audio.append(payload)
        size = len(b64_decode(payload.audio))
        return AssistantResponse(text=f"Analyzed {size} bytes of technician audio.")

    async def handle_interrupt(self) -> AssistantResponse:
        return AssistantResponse(text=INTERRUPT_TEXT)

    def live_session_count(self) -> int:
        return len(self._handlers)
