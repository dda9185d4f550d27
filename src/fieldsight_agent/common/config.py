"""
Централизованная конфигурация проекта (ENV / .env).

Важно:
- настройки читаются из .env и переменных окружения
- типизированные значения через pydantic-settings
- любой параметр можно передать файлом: <ENV>_FILE=/path/to/secret
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    app_env: str = Field(default="dev", alias="APP_ENV")
    service_name: str = Field(default="fieldsight-gateway", alias="SERVICE_NAME")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8080, alias="API_PORT")
    cors_allowed_origins: str = Field(default="*", alias="CORS_ALLOWED_ORIGINS")

    # -------------------------------------------------------------------------
    # Auth (identity provider: JWT shared secret или OIDC/JWKS)
    # -------------------------------------------------------------------------
    auth_required: bool = Field(default=False, alias="AUTH_REQUIRED")
    jwt_shared_secret: str | None = Field(default=None, alias="JWT_SHARED_SECRET")
    oidc_issuer_url: str | None = Field(default=None, alias="OIDC_ISSUER_URL")
    oidc_jwks_url: str | None = Field(default=None, alias="OIDC_JWKS_URL")
    oidc_audience: str | None = Field(default=None, alias="OIDC_AUDIENCE")
    oidc_algorithms: str = Field(default="RS256", alias="OIDC_ALGORITHMS")
    oidc_discovery_timeout_sec: int = Field(default=5, alias="OIDC_DISCOVERY_TIMEOUT_SEC")
    jwt_clock_skew_sec: int = Field(default=30, alias="JWT_CLOCK_SKEW_SEC")

    # -------------------------------------------------------------------------
    # Realtime (WebSocket)
    # -------------------------------------------------------------------------
    ws_rate_window_ms: int = Field(default=10_000, alias="WS_RATE_WINDOW_MS")
    ws_rate_max_messages: int = Field(default=400, alias="WS_RATE_MAX_MESSAGES")
    ws_default_audio_mime_type: str = Field(
        default="audio/pcm;rate=16000", alias="WS_DEFAULT_AUDIO_MIME_TYPE"
    )
    ws_default_sample_rate: int = Field(default=16_000, alias="WS_DEFAULT_SAMPLE_RATE")
    voice_intent_debounce_ms: int = Field(default=15_000, alias="VOICE_INTENT_DEBOUNCE_MS")

    # -------------------------------------------------------------------------
    # Assistant (внешний AI сервис)
    # -------------------------------------------------------------------------
    assistant_provider: str = Field(default="mock", alias="ASSISTANT_PROVIDER")  # mock
    assistant_turn_timeout_sec: float = Field(default=30.0, alias="ASSISTANT_TURN_TIMEOUT_SEC")

    # -------------------------------------------------------------------------
    # Workflow delivery (общая политика)
    # -------------------------------------------------------------------------
    workflow_request_timeout_sec: float = Field(default=5.0, alias="WORKFLOW_REQUEST_TIMEOUT_SEC")
    workflow_max_attempts: int = Field(default=3, alias="WORKFLOW_MAX_ATTEMPTS")
    workflow_retry_base_ms: int = Field(default=150, alias="WORKFLOW_RETRY_BASE_MS")
    workflow_retry_jitter_ms: int = Field(default=100, alias="WORKFLOW_RETRY_JITTER_MS")
    workflow_idempotency_ttl_sec: int = Field(default=3600, alias="WORKFLOW_IDEMPOTENCY_TTL_SEC")
    workflow_idempotency_max_entries: int = Field(
        default=1000, alias="WORKFLOW_IDEMPOTENCY_MAX_ENTRIES"
    )

    # -------------------------------------------------------------------------
    # Workflow webhook: create_ticket (WORKFLOW_TICKET_*)
    # -------------------------------------------------------------------------
    workflow_ticket_webhook_url: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_WEBHOOK_URL"
    )
    workflow_ticket_provider: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_PROVIDER"
    )  # generic|jira|servicenow
    workflow_ticket_auth_type: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_AUTH_TYPE"
    )  # none|bearer|basic
    workflow_ticket_auth_token: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_AUTH_TOKEN"
    )
    workflow_ticket_auth_username: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_AUTH_USERNAME"
    )
    workflow_ticket_auth_password: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_AUTH_PASSWORD"
    )
    workflow_ticket_jira_project_key: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_JIRA_PROJECT_KEY"
    )
    workflow_ticket_jira_issue_type: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_JIRA_ISSUE_TYPE"
    )
    workflow_ticket_jira_use_adf: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_JIRA_USE_ADF"
    )
    workflow_ticket_servicenow_table: str | None = Field(
        default=None, alias="WORKFLOW_TICKET_SERVICENOW_TABLE"
    )

    # -------------------------------------------------------------------------
    # Workflow webhook: notify_supervisor (WORKFLOW_NOTIFY_*)
    # -------------------------------------------------------------------------
    workflow_notify_webhook_url: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_WEBHOOK_URL"
    )
    workflow_notify_provider: str | None = Field(default=None, alias="WORKFLOW_NOTIFY_PROVIDER")
    workflow_notify_auth_type: str | None = Field(default=None, alias="WORKFLOW_NOTIFY_AUTH_TYPE")
    workflow_notify_auth_token: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_AUTH_TOKEN"
    )
    workflow_notify_auth_username: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_AUTH_USERNAME"
    )
    workflow_notify_auth_password: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_AUTH_PASSWORD"
    )
    workflow_notify_jira_project_key: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_JIRA_PROJECT_KEY"
    )
    workflow_notify_jira_issue_type: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_JIRA_ISSUE_TYPE"
    )
    workflow_notify_jira_use_adf: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_JIRA_USE_ADF"
    )
    workflow_notify_servicenow_table: str | None = Field(
        default=None, alias="WORKFLOW_NOTIFY_SERVICENOW_TABLE"
    )

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------
    storage_backend: str = Field(default="memory", alias="STORAGE_BACKEND")  # memory|sql
    database_url: str = Field(
        default="sqlite+pysqlite:///./data/fieldsight.db",
        alias="DATABASE_URL",
    )

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json|text

    def model_post_init(self, __context) -> None:
        _apply_file_overrides(self)


def _apply_file_overrides(settings: Settings) -> None:
    alias_to_field = {}
    for name, field in type(settings).model_fields.items():
        alias = field.alias or name
        alias_to_field[str(alias)] = name
        alias_to_field[str(name)] = name

    for key, path in os.environ.items():
        if not key.endswith("_FILE"):
            continue
        base = key[: -len("_FILE")]
        target = alias_to_field.get(base)
        if not target:
            continue
        file_path = (path or "").strip()
        if not file_path:
            continue
        try:
            raw = Path(file_path).read_text(encoding="utf-8")
        except Exception as e:
            logging.getLogger("fieldsight-agent").error(
                "config_file_read_failed",
                extra={"payload": {"env_key": key, "path": file_path, "error": str(e)[:200]}},
            )
            raise RuntimeError(f"Failed to read {key} from {file_path}") from e
        setattr(settings, target, raw.strip())


_SETTINGS = Settings()


def get_settings() -> Settings:
    return _SETTINGS
