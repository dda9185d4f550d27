from __future__ import annotations

import asyncio
import json

import pytest

from fieldsight_agent.common.config import Settings
from fieldsight_agent.delivery.engine import WorkflowDeliveryEngine
from fieldsight_agent.domain.enums import WorkflowAction, WorkflowStatus
from fieldsight_agent.realtime.session_registry import SessionRegistry
from fieldsight_agent.realtime.voice_trigger import VoiceIntentTrigger
from fieldsight_agent.storage.memory import MemoryInspectionStore


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))


class FakeClock:
    def __init__(self) -> None:
        self.ms = 1_000_000

    def __call__(self) -> int:
        return self.ms


class ExplodingEngine:
    async def run_action(self, req):
        raise RuntimeError("boom")


@pytest.fixture()
def settings() -> Settings:
    s = Settings()
    for name in type(s).model_fields:
        if name.startswith(("workflow_ticket_", "workflow_notify_")):
            setattr(s, name, None)
    s.voice_intent_debounce_ms = 15_000
    return s


def _setup(settings: Settings, *, engine=None):
    store = MemoryInspectionStore()
    registry = SessionRegistry()
    sock = FakeSocket()
    session = registry.register(sock)
    clock = FakeClock()
    trigger = VoiceIntentTrigger(
        store=store,
        engine=engine or WorkflowDeliveryEngine(settings=settings),
        reply=registry.send,
        settings=settings,
        clock=clock,
    )
    return store, session, sock, clock, trigger


def test_executes_action_and_records_event(settings) -> None:
    store, session, sock, _, trigger = _setup(settings)
    inspection = store.create_inspection(technician_id="tech-1", site_id="site-1")
    session.inspection_context = inspection.id

    result = asyncio.run(trigger.handle_transcript(session, "please create a ticket for this fault"))

    assert result is not None
    assert result.status == WorkflowStatus.completed
    assert sock.sent == [
        {
            "type": "gemini_response",
            "text": "Voice workflow executed (create_ticket): "
            "Ticket created locally (no webhook configured).",
        }
    ]
    events = store.list_workflow_events(inspection.id)
    assert len(events) == 1
    assert events[0].action == WorkflowAction.create_ticket
    assert events[0].note == "please create a ticket for this fault"
    assert events[0].metadata == {"source": "voice_intent"}
    assert events[0].external_reference_id == result.external_reference_id


def test_no_intent_is_silent(settings) -> None:
    _, session, sock, _, trigger = _setup(settings)
    session.inspection_context = "insp-1"

    assert asyncio.run(trigger.handle_transcript(session, "zoom in on the gauge")) is None
    assert sock.sent == []


def test_missing_context_and_missing_inspection(settings) -> None:
    _, session, sock, clock, trigger = _setup(settings)

    asyncio.run(trigger.handle_transcript(session, "log this issue"))
    assert sock.sent[-1]["text"] == "Workflow intent heard, but no active inspection context is set."

    session.inspection_context = "insp-404"
    clock.ms += 20_000
    asyncio.run(trigger.handle_transcript(session, "log this issue"))
    assert sock.sent[-1]["text"] == "Workflow intent skipped because inspection insp-404 was not found."


def test_same_action_is_debounced_within_window(settings) -> None:
    store, session, sock, clock, trigger = _setup(settings)
    inspection = store.create_inspection(technician_id="tech-1", site_id="site-1")
    session.inspection_context = inspection.id

    asyncio.run(trigger.handle_transcript(session, "log this issue"))
    clock.ms += 5_000
    assert asyncio.run(trigger.handle_transcript(session, "record this issue")) is None
    # другое действие не подавляется
    asyncio.run(trigger.handle_transcript(session, "add this to history"))
    clock.ms += 15_000
    asyncio.run(trigger.handle_transcript(session, "add to history"))

    actions = [e.action for e in store.list_workflow_events(inspection.id)]
    assert actions == [
        WorkflowAction.log_issue,
        WorkflowAction.add_to_history,
        WorkflowAction.add_to_history,
    ]
    assert len(sock.sent) == 3


def test_engine_failure_is_reported(settings) -> None:
    store, session, sock, _, trigger = _setup(settings, engine=ExplodingEngine())
    inspection = store.create_inspection(technician_id="tech-1", site_id="site-1")
    session.inspection_context = inspection.id

    assert asyncio.run(trigger.handle_transcript(session, "notify my supervisor")) is None
    assert sock.sent[-1]["text"] == "Voice workflow execution failed: boom"
    assert store.list_workflow_events(inspection.id) == []
