"""
Идемпотентность workflow-действий (кэш результатов).

Зачем нужно:
- клиент/UI может повторить запрос с тем же ключом
- повтор не должен создавать второй тикет во внешней системе

Реализация:
- in-process словарь key -> (result, created_at)
- перед каждым чтением/записью вычищаем записи старше TTL
- при переполнении выкидываем самую старую по порядку вставки (FIFO, не LRU)
- кэшируются только completed-результаты
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from .base import WorkflowActionResult

DEFAULT_TTL_SEC = 60 * 60  # 1 час
DEFAULT_MAX_ENTRIES = 1000


@dataclass
class IdempotencyEntry:
    result: WorkflowActionResult
    created_at: float


class IdempotencyCache:
    def __init__(
        self,
        *,
        ttl_sec: float = DEFAULT_TTL_SEC,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_sec = float(ttl_sec)
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._entries: dict[str, IdempotencyEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        self.prune()
        return key in self._entries

    def prune(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.created_at > self.ttl_sec]
        for k in expired:
            del self._entries[k]
        return len(expired)

    def get(self, key: str) -> WorkflowActionResult | None:
        self.prune()
        entry = self._entries.get(key)
        return entry.result if entry else None

    def put(self, key: str, result: WorkflowActionResult) -> WorkflowActionResult:
        self.prune()
        # перезапись ключа переносит его в конец очереди вытеснения
        self._entries.pop(key, None)
        self._entries[key] = IdempotencyEntry(result=result, created_at=self._clock())
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        return result

    def clear(self) -> None:
        self._entries.clear()
