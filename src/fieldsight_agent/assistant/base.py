"""
Контракт внешнего AI-ассистента (vision/speech).

Сама интеграция с моделью: внешний коллаборатор. Шлюз знает только этот интерфейс:
- live-канал (низкая задержка): start/send/end/close + поток LiveEvent через колбэк
- разовые вызовы анализа (кадр, склеенное аудио) для fallback-режима
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from fieldsight_agent.contracts.ws_events import (
    AssistantResponseEvent,
    AudioMessage,
    DetectedFault,
    SafetyFlag,
    VideoFrameMessage,
)

LiveEventType = Literal["chunk", "final", "interrupted", "error", "transcript"]


@dataclass
class LiveEvent:
    """
    Событие live-канала ассистента.
    """

    type: LiveEventType
    text: str | None = None
    message: str | None = None


LiveEventHandler = Callable[[LiveEvent], Awaitable[None]]


@dataclass
class AudioPayload:
    """
    Аудио для разового анализа (например, склеенный буфер fallback-режима).
    """

    audio: str  # base64
    mime_type: str
    sample_rate: int
    transcript: str | None = None

    @classmethod
    def from_message(cls, msg: AudioMessage, *, mime_type: str, sample_rate: int) -> AudioPayload:
        return cls(
            audio=msg.audio,
            mime_type=msg.mime_type or mime_type,
            sample_rate=msg.sample_rate or sample_rate,
            transcript=msg.transcript,
        )


@dataclass
class AssistantResponse:
    """
    Структурированный ответ ассистента -> сообщение gemini_response.
    """

    text: str
    safety_flags: list[dict[str, Any]] = field(default_factory=list)
    detected_faults: list[dict[str, Any]] = field(default_factory=list)
    needs_clarity: bool | None = None
    clarity_request: str | None = None

    def to_wire(self) -> dict[str, Any]:
        event = AssistantResponseEvent(
            text=self.text,
            safety_flags=[SafetyFlag.model_validate(f) for f in self.safety_flags] or None,
            detected_faults=[DetectedFault.model_validate(f) for f in self.detected_faults]
            or None,
            needs_clarity=self.needs_clarity,
            clarity_request=self.clarity_request,
        )
        return event.to_wire()


class VisionAssistant(Protocol):
    """
    Контракт провайдера ассистента.
    """

    async def start_live_session(self, client_id: str, on_event: LiveEventHandler) -> bool:
        """Открыть live-канал. False -> клиент работает в fallback-режиме."""
        ...

    async def send_audio_chunk(self, client_id: str, chunk: AudioPayload) -> None: ...

    async def end_audio_stream(self, client_id: str) -> None:
        """Завершить реплику в live-канале (ответ придёт через LiveEvent)."""
        ...

    async def close_live_session(self, client_id: str) -> None: ...

    async def analyze_video_frame(self, msg: VideoFrameMessage) -> AssistantResponse: ...

    async def analyze_audio(self, payload: AudioPayload) -> AssistantResponse: ...

    async def handle_interrupt(self) -> AssistantResponse: ...

    def live_session_count(self) -> int: ...
