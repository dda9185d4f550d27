"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (Bearer JWT)
- доступ к realtime-шлюзу приложения
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from fieldsight_agent.common.errors import UnauthorizedError
from fieldsight_agent.common.logging import get_project_logger
from fieldsight_agent.common.security import AuthContext, authenticate_bearer_header
from fieldsight_agent.realtime.gateway import RealtimeGateway

log = get_project_logger()


def _request_meta(request: Request) -> tuple[str, str, str | None]:
    client_ip = request.client.host if request.client else None
    return request.url.path, request.method, client_ip


def _audit_deny(*, request: Request, reason: str, error_code: str) -> None:
    endpoint, method, client_ip = _request_meta(request)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status.HTTP_401_UNAUTHORIZED,
                "reason": reason,
                "error_code": error_code,
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP (при AUTH_REQUIRED=false: анонимно).
    """
    try:
        return authenticate_bearer_header(authorization)
    except UnauthorizedError as e:
        _audit_deny(request=request, reason=e.message, error_code=e.code)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def gateway_dep(request: Request) -> RealtimeGateway:
    return request.app.state.gateway
