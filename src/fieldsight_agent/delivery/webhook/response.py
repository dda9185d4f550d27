"""
Разбор ответа внешней системы: идентификатор и сообщение.
"""

from __future__ import annotations

from typing import Any

REFERENCE_FIELDS = (
    "externalReferenceId",
    "referenceId",
    "ticketId",
    "id",
    "key",
    "issueKey",
    "number",
    "sys_id",
)
REFERENCE_PATHS = (
    ("result", "number"),
    ("result", "sys_id"),
    ("result", "id"),
    ("data", "id"),
)

MESSAGE_FIELDS = ("resultMessage", "message", "statusMessage")
MESSAGE_PATHS = (
    ("result", "message"),
    ("result", "status_message"),
    ("error", "message"),
)


def _non_empty(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def get_str_by_path(source: dict[str, Any], path: tuple[str, ...]) -> str | None:
    current: Any = source
    for segment in path:
        if not isinstance(current, dict):
            return None
        current = current.get(segment)
    return _non_empty(current)


def _first_match(
    body: dict[str, Any] | None, fields: tuple[str, ...], paths: tuple[tuple[str, ...], ...]
) -> str | None:
    if not body:
        return None
    for name in fields:
        found = _non_empty(body.get(name))
        if found:
            return found
    for path in paths:
        found = get_str_by_path(body, path)
        if found:
            return found
    return None


def extract_reference_id(body: dict[str, Any] | None) -> str | None:
    return _first_match(body, REFERENCE_FIELDS, REFERENCE_PATHS)


def extract_result_message(body: dict[str, Any] | None) -> str | None:
    return _first_match(body, MESSAGE_FIELDS, MESSAGE_PATHS)
