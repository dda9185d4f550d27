"""
HTTP-отправка webhook (requests).

Ошибки классифицируются здесь же, в точке отказа:
- requests.Timeout -> timeout
- requests.ConnectionError -> connection_failed
- не-2xx -> http_status (код в status_code)
- не заданы креды -> auth_config_missing
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any

import requests

from fieldsight_agent.delivery.retry import DeliveryError
from fieldsight_agent.domain.enums import DeliveryErrorKind, WebhookAuthType, WebhookProvider

from .config import WebhookConfig


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body_text: str
    body_json: dict[str, Any] | None


def build_headers(config: WebhookConfig, idempotency_key: str) -> dict[str, str]:
    headers: dict[str, str] = {
        "Content-Type": "application/json",
        "X-Idempotency-Key": idempotency_key,
    }
    if config.provider == WebhookProvider.jira:
        headers["Accept"] = "application/json"

    auth = config.auth
    if auth.type == WebhookAuthType.bearer:
        token = (auth.token or "").strip()
        if not token:
            raise DeliveryError(
                DeliveryErrorKind.auth_config_missing,
                "Webhook bearer auth token is not configured",
            )
        headers["Authorization"] = f"Bearer {token}"
    elif auth.type == WebhookAuthType.basic:
        username = (auth.username or "").strip()
        if not username or auth.password is None:
            raise DeliveryError(
                DeliveryErrorKind.auth_config_missing,
                "Webhook basic auth credentials are not configured",
            )
        encoded = base64.b64encode(f"{username}:{auth.password}".encode()).decode("ascii")
        headers["Authorization"] = f"Basic {encoded}"
    return headers


def _parse_json_object(resp: requests.Response) -> dict[str, Any] | None:
    if not resp.content or not resp.text.strip():
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def post_json(
    config: WebhookConfig,
    payload: dict[str, Any],
    *,
    idempotency_key: str,
    timeout_sec: float,
) -> WebhookResponse:
    """
    Одна попытка POST. Блокирующая: из event loop вызывать через asyncio.to_thread.
    """
    if not config.url:
        raise DeliveryError(DeliveryErrorKind.invalid_request, "Webhook URL is not configured")

    headers = build_headers(config, idempotency_key)
    try:
        resp = requests.post(config.url, json=payload, headers=headers, timeout=timeout_sec)
    except requests.Timeout as e:
        raise DeliveryError(DeliveryErrorKind.timeout, "Webhook request timed out") from e
    except requests.ConnectionError as e:
        raise DeliveryError(
            DeliveryErrorKind.connection_failed, f"Webhook connection failed: {e}"
        ) from e
    except requests.RequestException as e:
        raise DeliveryError(DeliveryErrorKind.invalid_request, f"Webhook request failed: {e}") from e

    status = int(resp.status_code or 0)
    if not 200 <= status < 300:
        raise DeliveryError(
            DeliveryErrorKind.http_status,
            f"Webhook returned status {status or 'unknown'}",
            status_code=status,
        )
    return WebhookResponse(status_code=status, body_text=resp.text or "", body_json=_parse_json_object(resp))
