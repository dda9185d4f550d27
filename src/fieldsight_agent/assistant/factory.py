"""
Выбор провайдера ассистента через ENV (ASSISTANT_PROVIDER).
"""

from __future__ import annotations

from fieldsight_agent.common.config import get_settings
from fieldsight_agent.common.errors import ErrCode, ProviderError

from .base import VisionAssistant
from .mock import MockVisionAssistant


def build_assistant() -> VisionAssistant:
    provider = (get_settings().assistant_provider or "mock").strip().lower()
    if provider == "mock":
        return MockVisionAssistant()
    raise ProviderError(
        ErrCode.ASSISTANT_PROVIDER_ERROR,
        f"Unknown assistant provider: {provider}",
        details={"allowed": "mock"},
    )
