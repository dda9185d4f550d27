"""
Выбор хранилища через ENV (STORAGE_BACKEND=memory|sql).
"""

from __future__ import annotations

from fieldsight_agent.common.config import get_settings
from fieldsight_agent.common.errors import ErrCode, ProviderError
from fieldsight_agent.common.logging import get_project_logger

from .base import InspectionStore
from .memory import MemoryInspectionStore

log = get_project_logger()


def build_inspection_store() -> InspectionStore:
    backend = (get_settings().storage_backend or "memory").strip().lower()
    if backend == "memory":
        return MemoryInspectionStore()
    if backend == "sql":
        from .db import get_engine
        from .repositories import SqlInspectionStore

        log.info("storage_sql_enabled")
        return SqlInspectionStore(get_engine())
    raise ProviderError(
        ErrCode.STORAGE_ERROR,
        f"Unknown storage backend: {backend}",
        details={"allowed": "memory,sql"},
    )
