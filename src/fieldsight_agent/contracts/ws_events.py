"""
Контракты WebSocket-сообщений (Pydantic-модели).

Зачем:
- строгая валидация входящих сообщений по полю-дискриминатору `type`
- единая точка, чтобы не разъезжались названия событий
- исходящие сообщения собираются тут же (model_dump без None-полей)

Невалидное сообщение -> ValidationError, соединение при этом НЕ закрывается.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from fieldsight_agent.common.errors import ValidationError


class _Incoming(BaseModel):
    # неизвестные поля игнорируем, типы проверяем строго (без "5" -> 5)
    model_config = ConfigDict(strict=True, extra="ignore", frozen=True)


# =============================================================================
# ВХОД (client -> server)
# =============================================================================
class JoinSessionMessage(_Incoming):
    type: Literal["join_session"]
    session_id: str = Field(alias="sessionId", min_length=1, max_length=128)


class VideoFrameMessage(_Incoming):
    type: Literal["video_frame"]
    frame: str = Field(min_length=32)
    timestamp: int = Field(ge=0)


class AudioMessage(_Incoming):
    type: Literal["audio"]
    audio: str = Field(min_length=16)  # base64
    mime_type: str | None = Field(default=None, alias="mimeType")
    sample_rate: int | None = Field(default=None, alias="sampleRate", gt=0)
    transcript: str | None = None
    timestamp: int | None = Field(default=None, ge=0)


class AudioStreamEndMessage(_Incoming):
    type: Literal["audio_stream_end"]
    timestamp: int | None = Field(default=None, ge=0)


class InterruptMessage(_Incoming):
    type: Literal["interrupt"]


class InspectionContextMessage(_Incoming):
    type: Literal["inspection_context"]
    inspection_id: str = Field(alias="inspectionId", min_length=1, max_length=128)


IncomingMessage = Annotated[
    JoinSessionMessage
    | VideoFrameMessage
    | AudioMessage
    | AudioStreamEndMessage
    | InterruptMessage
    | InspectionContextMessage,
    Field(discriminator="type"),
]

_INCOMING_ADAPTER: TypeAdapter[IncomingMessage] = TypeAdapter(IncomingMessage)


def parse_incoming(raw: Any) -> IncomingMessage:
    """
    Валидация входящего сообщения (уже распарсенный JSON).
    """
    if not isinstance(raw, dict):
        raise ValidationError("Message must be a JSON object")
    try:
        return _INCOMING_ADAPTER.validate_python(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid message payload",
            details={"type": raw.get("type"), "errors": e.error_count()},
        ) from e


def is_valid_incoming(raw: Any) -> bool:
    try:
        parse_incoming(raw)
    except ValidationError:
        return False
    return True


# =============================================================================
# ВЫХОД (server -> client)
# =============================================================================
class _Outgoing(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SafetyFlag(_Outgoing):
    type: str
    severity: str
    description: str


class DetectedFault(_Outgoing):
    component: str
    fault_type: str = Field(alias="faultType")
    confidence: float
    description: str
    recommended_actions: list[str] = Field(default_factory=list, alias="recommendedActions")


class ConnectedEvent(_Outgoing):
    type: Literal["connected"] = "connected"
    client_id: str = Field(alias="clientId")


class AssistantResponseEvent(_Outgoing):
    type: Literal["gemini_response"] = "gemini_response"
    text: str
    audio: str | None = None
    safety_flags: list[SafetyFlag] | None = Field(default=None, alias="safetyFlags")
    detected_faults: list[DetectedFault] | None = Field(default=None, alias="detectedFaults")
    needs_clarity: bool | None = Field(default=None, alias="needsClarity")
    clarity_request: str | None = Field(default=None, alias="clarityRequest")


class AssistantChunkEvent(_Outgoing):
    type: Literal["gemini_response_chunk"] = "gemini_response_chunk"
    text_chunk: str = Field(alias="textChunk")


class LiveTranscriptEvent(_Outgoing):
    type: Literal["live_transcript"] = "live_transcript"
    speaker: str
    text: str


class ErrorEvent(_Outgoing):
    type: Literal["error"] = "error"
    message: str


def assistant_text(text: str) -> dict[str, Any]:
    """Короткий текстовый ответ ассистента (системные сообщения, fallback)."""
    return AssistantResponseEvent(text=text).to_wire()


def error_message(message: str) -> dict[str, Any]:
    return ErrorEvent(message=message).to_wire()
