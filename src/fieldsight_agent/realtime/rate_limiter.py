"""
Rate limiting входящих WS-сообщений (скользящее окно, фиксированные корзины).

- первая попытка открывает окно и проходит
- внутри окна проходим, пока count < max
- окно истекло (now - window_start строго больше window_ms) -> новое окно, count = 1
- clear() на disconnect, чтобы не копить память
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fieldsight_agent.common.time import utc_ms


@dataclass
class RateBucket:
    window_start: int
    count: int


class SlidingWindowRateLimiter:
    def __init__(
        self, window_ms: int, max_messages: int, *, clock: Callable[[], int] = utc_ms
    ) -> None:
        self.window_ms = int(window_ms)
        self.max_messages = int(max_messages)
        self._clock = clock
        self._buckets: dict[str, RateBucket] = {}

    def allow(self, key: str, now: int | None = None) -> bool:
        ts = self._clock() if now is None else now
        bucket = self._buckets.get(key)
        if bucket is None or ts - bucket.window_start > self.window_ms:
            self._buckets[key] = RateBucket(window_start=ts, count=1)
            return True
        if bucket.count >= self.max_messages:
            return False
        bucket.count += 1
        return True

    def remaining(self, key: str, now: int | None = None) -> int:
        ts = self._clock() if now is None else now
        bucket = self._buckets.get(key)
        if bucket is None or ts - bucket.window_start > self.window_ms:
            return self.max_messages
        return max(0, self.max_messages - bucket.count)

    def clear(self, key: str) -> None:
        self._buckets.pop(key, None)

    def size(self) -> int:
        return len(self._buckets)
