"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations

import base64
from collections.abc import Iterable
from typing import Any


def b64_encode(data: bytes) -> str:
    """
    base64(bytes) -> str
    """
    return base64.b64encode(data).decode("utf-8")


def b64_decode(data_b64: str) -> bytes:
    """
    base64(str) -> bytes
    """
    return base64.b64decode(data_b64.encode("utf-8"))


def concat_b64(chunks: Iterable[str]) -> str:
    """
    Склейка base64-чанков без порчи бинарных данных:
    сначала декодируем каждый чанк, склеиваем байты, кодируем обратно.
    """
    return b64_encode(b"".join(b64_decode(c) for c in chunks))


def clean_str(value: Any) -> str | None:
    """
    Строка без пробелов по краям; пустая строка и не-строки -> None.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None
