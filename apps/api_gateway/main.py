"""
API Gateway (FastAPI).

Функции:
- /health (со статистикой WS-клиентов)
- /metrics
- HTTP API инспекций и workflow-действий
- WebSocket (/ws и /) для видео/аудио/голосовых команд техника
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api_gateway.routers.workflow import router as workflow_router
from apps.api_gateway.ws import ws_router
from fieldsight_agent.common.config import get_settings
from fieldsight_agent.common.logging import get_project_logger, setup_logging
from fieldsight_agent.common.metrics import setup_metrics_endpoint
from fieldsight_agent.common.observability import setup_observability
from fieldsight_agent.common.security import is_auth_required
from fieldsight_agent.common.time import utc_now_iso
from fieldsight_agent.realtime.gateway import RealtimeGateway

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def create_app(gateway: RealtimeGateway | None = None) -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="FieldSight Gateway", version="0.1.0")
    app.state.gateway = gateway or RealtimeGateway(settings=settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_origins(settings.cors_allowed_origins),
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "Idempotency-Key"],
    )

    setup_metrics_endpoint(app)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": utc_now_iso(),
            "websocket": app.state.gateway.stats(),
        }

    app.include_router(workflow_router, prefix="/v1")
    app.include_router(ws_router)

    log.info(
        "api_gateway_ready",
        extra={
            "payload": {
                "service": settings.service_name,
                "auth_required": is_auth_required(),
                "storage_backend": settings.storage_backend,
            }
        },
    )
    return app


setup_logging()
setup_observability()

app = create_app()


def run() -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run(app, host=s.api_host, port=int(s.api_port), log_config=None)


if __name__ == "__main__":
    run()
