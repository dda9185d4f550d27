"""
Ретраи доставки webhook.

Назначение:
- явная классификация ошибок (DeliveryErrorKind) в точке отказа, без разбора текста
- экспоненциальный backoff с jitter: base * 2^(attempt-1) + random(0..jitter)
- ограниченное число попыток; неретраибельные ошибки: сразу наружу
"""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from fieldsight_agent.common.logging import get_project_logger
from fieldsight_agent.domain.enums import DeliveryErrorKind

log = get_project_logger()

T = TypeVar("T")

RETRIABLE_STATUSES = frozenset({408, 425, 429})


class DeliveryError(Exception):
    """
    Ошибка доставки webhook с явным классом.
    """

    def __init__(
        self, kind: DeliveryErrorKind, message: str, *, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def retriable(self) -> bool:
        return is_retriable(self.kind, self.status_code)


def is_retriable(kind: DeliveryErrorKind, status_code: int | None = None) -> bool:
    if kind in (DeliveryErrorKind.timeout, DeliveryErrorKind.connection_failed):
        return True
    if kind == DeliveryErrorKind.http_status:
        code = int(status_code or 0)
        return code in RETRIABLE_STATUSES or code >= 500
    return False


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 150
    jitter_ms: int = 100

    def delay_sec(self, attempt: int, *, rand: Callable[[], float] = random.random) -> float:
        exp = self.base_delay_ms * (2 ** max(0, attempt - 1))
        jitter = int(rand() * max(0, self.jitter_ms))
        return (exp + jitter) / 1000.0


async def run_with_retry(
    op: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]],
    log_context: dict | None = None,
) -> T:
    """
    Выполнить op(attempt) с ретраями по политике.
    Пробрасывает последнюю DeliveryError, если попытки кончились
    или ошибка неретраибельная.
    """
    attempts = max(1, int(policy.max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return await op(attempt)
        except DeliveryError as e:
            last_attempt = attempt >= attempts
            log.warning(
                "workflow_webhook_attempt_failed",
                extra={
                    "payload": {
                        **(log_context or {}),
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "kind": e.kind.value,
                        "status_code": e.status_code,
                        "retriable": e.retriable,
                        "err": e.message[:200],
                    }
                },
            )
            if not e.retriable or last_attempt:
                raise
            await sleep(policy.delay_sec(attempt))
    raise AssertionError("unreachable")  # pragma: no cover
