"""
WebSocket обработчик.

Протокол:
- клиент присылает JSON {"type": "...", ...} (join_session / video_frame / audio /
  audio_stream_end / interrupt / inspection_context)
- токен: query ?token=..., иначе Authorization: Bearer
- при AUTH_REQUIRED и невалидном токене: accept, затем close(4401, "Unauthorized")
- после handshake сервер шлёт {"type": "connected", "clientId": ...}

Вся логика сообщений: в RealtimeGateway; тут только транспорт.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from fieldsight_agent.common.errors import UnauthorizedError
from fieldsight_agent.common.logging import get_project_logger
from fieldsight_agent.common.metrics import WS_CONNECTIONS_TOTAL
from fieldsight_agent.common.security import AuthContext, authenticate_token, extract_bearer
from fieldsight_agent.realtime.gateway import RealtimeGateway

log = get_project_logger()

ws_router = APIRouter()

WS_UNAUTHORIZED = 4401


def _ws_client_ip(ws: WebSocket) -> str | None:
    return ws.client.host if ws.client else None


def _ws_token(ws: WebSocket) -> str | None:
    token = (ws.query_params.get("token") or "").strip()
    if token:
        return token
    return extract_bearer(ws.headers.get("authorization"))


async def _authorize_ws(ws: WebSocket) -> AuthContext | None:
    try:
        ctx = await asyncio.to_thread(authenticate_token, _ws_token(ws))
    except UnauthorizedError as e:
        log.warning(
            "security_audit_deny",
            extra={
                "payload": {
                    "endpoint": ws.url.path,
                    "method": "WS",
                    "status_code": WS_UNAUTHORIZED,
                    "reason": e.message,
                    "error_code": e.code,
                    "client_ip": _ws_client_ip(ws),
                }
            },
        )
        WS_CONNECTIONS_TOTAL.labels(result="unauthorized").inc()
        await ws.close(code=WS_UNAUTHORIZED, reason="Unauthorized")
        return None
    WS_CONNECTIONS_TOTAL.labels(result="accepted").inc()
    return ctx


async def _websocket_endpoint_impl(ws: WebSocket) -> None:
    await ws.accept()
    ctx = await _authorize_ws(ws)
    if ctx is None:
        return

    gateway: RealtimeGateway = ws.app.state.gateway
    session = await gateway.on_connect(ws)
    log.info(
        "ws_client_connected",
        extra={"payload": {**session.log_context(), "subject": ctx.subject}},
    )

    try:
        while True:
            message = await ws.receive()
            if message.get("type") == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            await gateway.on_message(session, raw)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.error(
            "ws_fatal",
            extra={"payload": {**session.log_context(), "err": str(e)[:200]}},
        )
    finally:
        await gateway.on_disconnect(session)


@ws_router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket) -> None:
    await _websocket_endpoint_impl(ws)


@ws_router.websocket("/")
async def websocket_root_endpoint(ws: WebSocket) -> None:
    await _websocket_endpoint_impl(ws)
