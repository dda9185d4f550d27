"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Счётчики WS-трафика и доставки workflow-действий
"""

from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# HTTP
# =============================================================================
REQUESTS_TOTAL = Counter(
    "fieldsight_requests_total",
    "Общее количество HTTP запросов",
    ["route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "fieldsight_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

# =============================================================================
# REALTIME (WebSocket)
# =============================================================================
WS_CLIENTS = Gauge(
    "fieldsight_ws_clients",
    "Текущее количество WS-клиентов",
)

WS_CONNECTIONS_TOTAL = Counter(
    "fieldsight_ws_connections_total",
    "WS-подключения по результату handshake",
    ["result"],  # accepted|unauthorized
)

WS_MESSAGES_TOTAL = Counter(
    "fieldsight_ws_messages_total",
    "WS-сообщения по направлению и типу",
    ["direction", "type"],
)

WS_REJECTED_TOTAL = Counter(
    "fieldsight_ws_rejected_total",
    "Отклонённые входящие WS-сообщения",
    ["reason"],  # rate_limited|invalid
)

# =============================================================================
# WORKFLOW DELIVERY
# =============================================================================
WORKFLOW_ACTIONS_TOTAL = Counter(
    "fieldsight_workflow_actions_total",
    "Результаты workflow-действий",
    ["action", "status"],
)

WORKFLOW_WEBHOOK_ATTEMPTS_TOTAL = Counter(
    "fieldsight_workflow_webhook_attempts_total",
    "Попытки доставки webhook",
    ["provider", "outcome"],  # ok|retriable|fatal
)

WORKFLOW_IDEMPOTENT_REPLAYS_TOTAL = Counter(
    "fieldsight_workflow_idempotent_replays_total",
    "Ответы из кэша идемпотентности",
)


def record_ws_message(*, direction: str, msg_type: str) -> None:
    WS_MESSAGES_TOTAL.labels(direction=direction, type=msg_type or "unknown").inc()


def record_ws_rejected(reason: str) -> None:
    WS_REJECTED_TOTAL.labels(reason=reason).inc()


def record_workflow_action(*, action: str, status: str) -> None:
    WORKFLOW_ACTIONS_TOTAL.labels(action=action, status=status).inc()


def record_webhook_attempt(*, provider: str, outcome: str) -> None:
    WORKFLOW_WEBHOOK_ATTEMPTS_TOTAL.labels(provider=provider, outcome=outcome).inc()


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        REQUESTS_TOTAL.labels(route=route, method=method, status=str(response.status_code)).inc()
        HTTP_REQUEST_LATENCY_MS.labels(route=route, method=method).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
