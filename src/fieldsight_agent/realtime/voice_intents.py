"""
Классификация голосовых workflow-намерений по транскрипту.

Чистые функции, без политики debounce/подтверждения.
Порядок намерений важен: "ticket"-фразы проверяются раньше общих "log"-фраз.
"""

from __future__ import annotations

import re

from fieldsight_agent.domain.enums import EXTERNAL_ACTIONS, ConfirmationDecision, WorkflowAction

INTENT_PATTERNS: tuple[tuple[WorkflowAction, tuple[re.Pattern[str], ...]], ...] = (
    (
        WorkflowAction.create_ticket,
        (
            re.compile(r"\bcreate\s+(a\s+)?ticket\b", re.IGNORECASE),
            re.compile(r"\bopen\s+(a\s+)?ticket\b", re.IGNORECASE),
            re.compile(r"\braise\s+(a\s+)?ticket\b", re.IGNORECASE),
        ),
    ),
    (
        WorkflowAction.notify_supervisor,
        (
            re.compile(r"\bnotify\s+(my\s+)?supervisor\b", re.IGNORECASE),
            re.compile(r"\balert\s+(my\s+)?supervisor\b", re.IGNORECASE),
            re.compile(r"\binform\s+(my\s+)?supervisor\b", re.IGNORECASE),
        ),
    ),
    (
        WorkflowAction.log_issue,
        (
            re.compile(r"\blog\s+(this\s+)?issue\b", re.IGNORECASE),
            re.compile(r"\brecord\s+(this\s+)?issue\b", re.IGNORECASE),
        ),
    ),
    (
        WorkflowAction.add_to_history,
        (
            re.compile(r"\badd\s+(this\s+)?to\s+history\b", re.IGNORECASE),
            re.compile(r"\bsave\s+(this\s+)?to\s+history\b", re.IGNORECASE),
        ),
    ),
)

_CONFIRM_RE = re.compile(r"\b(confirm|yes|proceed|do it|go ahead)\b", re.IGNORECASE)
_CANCEL_RE = re.compile(r"\b(cancel|stop|never mind|abort|don't)\b", re.IGNORECASE)


def detect_workflow_intent(transcript: str | None) -> WorkflowAction | None:
    text = (transcript or "").strip()
    if not text:
        return None
    for action, patterns in INTENT_PATTERNS:
        if any(p.search(text) for p in patterns):
            return action
    return None


def requires_voice_confirmation(action: WorkflowAction | str) -> bool:
    try:
        return WorkflowAction(action) in EXTERNAL_ACTIONS
    except ValueError:
        return False


def detect_workflow_confirmation_decision(transcript: str | None) -> ConfirmationDecision | None:
    text = (transcript or "").strip()
    if not text:
        return None
    # confirm проверяется первым
    if _CONFIRM_RE.search(text):
        return ConfirmationDecision.confirm
    if _CANCEL_RE.search(text):
        return ConfirmationDecision.cancel
    return None
