"""
Генерация идентификаторов.

Назначение:
- client_id для WS-подключений
- request_id / idempotency_key для доставки workflow
- локальные reference id (ticket_<uuid>, notification_<uuid>)
"""

from __future__ import annotations

import uuid


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_client_id() -> str:
    return new_uuid()


def new_request_id() -> str:
    return new_uuid()


def new_idempotency_key() -> str:
    """
    Ключ идемпотентности, если вызывающий не передал свой.
    Такой ключ не дедуплицирует ретраи вызывающего.
    """
    return new_uuid()


def new_reference_id(prefix: str) -> str:
    """Локальный reference id: <prefix>_<uuid>."""
    return f"{prefix}_{new_uuid()}"
