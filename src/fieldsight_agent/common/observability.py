"""
Observability bootstrap.

Назначение:
- централизованно включить логирование на старте процесса
- не тянуть лишние зависимости внутрь apps/*
"""

from __future__ import annotations

from fieldsight_agent.common.config import get_settings
from fieldsight_agent.common.logging import get_project_logger, setup_logging

log = get_project_logger()


def setup_observability() -> None:
    """
    Вызывается на старте процесса.
    Метрики подключаются отдельно через setup_metrics_endpoint(app).
    """
    setup_logging()
    s = get_settings()
    log.info(
        "observability_ready",
        extra={
            "payload": {
                "service": s.service_name,
                "app_env": s.app_env,
                "auth_required": bool(s.auth_required),
            }
        },
    )
