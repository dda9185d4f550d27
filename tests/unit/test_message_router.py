from __future__ import annotations

import asyncio
import base64
import json

from fieldsight_agent.assistant.base import AssistantResponse, LiveEvent
from fieldsight_agent.assistant.mock import MockVisionAssistant
from fieldsight_agent.common.config import Settings
from fieldsight_agent.delivery.results import completed_result
from fieldsight_agent.realtime.gateway import HANDLER_FAILED_TEXT, RealtimeGateway
from fieldsight_agent.realtime.router import FALLBACK_AUDIO_FAILED_TEXT, LIVE_TURN_FAILED_TEXT
from fieldsight_agent.storage.memory import MemoryInspectionStore


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(json.loads(data))


class FailingAssistant(MockVisionAssistant):
    async def analyze_video_frame(self, msg):
        raise RuntimeError("upstream down")

    async def analyze_audio(self, payload):
        raise RuntimeError("upstream down")


class SlowAssistant(MockVisionAssistant):
    async def analyze_video_frame(self, msg) -> AssistantResponse:
        await asyncio.sleep(1)
        return AssistantResponse(text="late")


def _settings(**overrides) -> Settings:
    s = Settings()
    s.ws_rate_window_ms = 10_000
    s.ws_rate_max_messages = 400
    for name in type(s).model_fields:
        if name.startswith(("workflow_ticket_", "workflow_notify_")):
            setattr(s, name, None)
    for k, v in overrides.items():
        setattr(s, k, v)
    return s


def _gateway(assistant=None, **overrides) -> RealtimeGateway:
    return RealtimeGateway(
        settings=_settings(**overrides),
        assistant=assistant or MockVisionAssistant(),
        store=MemoryInspectionStore(),
    )


def _chunk(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _msg(**payload) -> str:
    return json.dumps(payload)


def test_fallback_audio_is_buffered_and_flushed_once() -> None:
    assistant = MockVisionAssistant()
    gw = _gateway(assistant)
    sock = FakeSocket()
    parts = [b"a" * 16, b"b" * 16, b"c" * 16]

    async def scenario():
        session = await gw.on_connect(sock)
        assert session.live_enabled is False
        for part in parts:
            await gw.on_message(session, _msg(type="audio", audio=_chunk(part), sampleRate=48000))
        assert len(session.audio_buffer.chunks) == 3
        await gw.on_message(session, _msg(type="audio_stream_end"))
        return session

    session = asyncio.run(scenario())

    assert session.audio_buffer is None
    assert len(assistant.analyzed_audio) == 1
    analyzed = assistant.analyzed_audio[0]
    assert base64.b64decode(analyzed.audio) == b"".join(parts)
    assert analyzed.sample_rate == 48000
    assert analyzed.mime_type == "audio/pcm;rate=16000"
    assert sock.sent[0]["type"] == "connected"
    assert sock.sent[-1] == {"type": "gemini_response", "text": "Analyzed 48 bytes of technician audio."}
    assert len(sock.sent) == 2


def test_stream_end_without_audio_replies_hint() -> None:
    gw = _gateway()
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="audio_stream_end"))

    asyncio.run(scenario())
    assert sock.sent[-1]["text"] == "No audio was captured. Hold push-to-talk and speak, then release."


def test_fallback_analysis_failure_still_clears_buffer() -> None:
    gw = _gateway(FailingAssistant())
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="audio", audio=_chunk(b"x" * 16)))
        await gw.on_message(session, _msg(type="audio_stream_end"))
        return session

    session = asyncio.run(scenario())
    assert session.audio_buffer is None
    assert sock.sent[-1]["text"] == "Audio processing failed. Please try again."


def test_video_frame_failure_and_timeout_use_fallback_text() -> None:
    frame = _msg(type="video_frame", frame="F" * 64, timestamp=1)
    expected = "I could not analyze that frame. Capture a clearer snapshot and try again."

    failing_sock = FakeSocket()
    failing = _gateway(FailingAssistant())

    slow_sock = FakeSocket()
    slow = _gateway(SlowAssistant(), assistant_turn_timeout_sec=0.01)

    async def scenario():
        s1 = await failing.on_connect(failing_sock)
        await failing.on_message(s1, frame)
        s2 = await slow.on_connect(slow_sock)
        await slow.on_message(s2, frame)

    asyncio.run(scenario())
    assert failing_sock.sent[-1]["text"] == expected
    assert slow_sock.sent[-1]["text"] == expected


def test_invalid_payload_and_bad_json_get_error_reply() -> None:
    gw = _gateway()
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="video_frame", frame="short", timestamp=1))
        await gw.on_message(session, "{not json")
        await gw.on_message(session, _msg(type="join_session", sessionId="room-7"))
        return session

    session = asyncio.run(scenario())
    errors = [m for m in sock.sent if m["type"] == "error"]
    assert errors == [
        {"type": "error", "message": "Invalid message payload."},
        {"type": "error", "message": "Invalid message payload."},
    ]
    # соединение живо, join обработан
    assert session.session_id == "room-7"


def test_rate_limit_rejects_without_state_change() -> None:
    gw = _gateway(ws_rate_max_messages=1)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="inspection_context", inspectionId="insp-1"))
        await gw.on_message(session, _msg(type="inspection_context", inspectionId="insp-2"))
        return session

    session = asyncio.run(scenario())
    assert session.inspection_context == "insp-1"
    assert sock.sent[-2] == {"type": "gemini_response", "text": "Inspection context set to insp-1"}
    assert sock.sent[-1] == {"type": "error", "message": "Rate limit exceeded. Slow down and try again."}


def test_live_mode_forwards_chunks_and_transcript() -> None:
    assistant = MockVisionAssistant(live_enabled=True)
    gw = _gateway(assistant)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        assert session.live_enabled is True
        await gw.on_message(
            session,
            _msg(type="audio", audio=_chunk(b"z" * 16), transcript="please create a ticket"),
        )
        assert session.audio_buffer is None
        await gw.on_message(session, _msg(type="audio_stream_end"))
        await session.drain_workflows()

    asyncio.run(scenario())
    assert [m["type"] for m in sock.sent] == [
        "connected",
        "live_transcript",
        "gemini_response",
        "gemini_response",
    ]
    assert sock.sent[1] == {"type": "live_transcript", "speaker": "user", "text": "please create a ticket"}
    assert sock.sent[2]["text"] == "Received 1 audio chunk(s)."
    assert sock.sent[3]["text"] == "Workflow intent heard, but no active inspection context is set."


def test_live_events_mapping() -> None:
    gw = _gateway(MockVisionAssistant(live_enabled=True))
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        forward = gw.router.forward_live_event
        await forward(session, LiveEvent(type="chunk", text="Check the"))
        await forward(session, LiveEvent(type="interrupted"))
        await forward(session, LiveEvent(type="error", message="stream reset"))
        await forward(session, LiveEvent(type="final", text=""))

    asyncio.run(scenario())
    assert sock.sent[1:] == [
        {"type": "gemini_response_chunk", "textChunk": "Check the"},
        {"type": "gemini_response", "text": "Interrupted by user speech."},
    ]


def test_interrupt_and_disconnect_cleanup() -> None:
    assistant = MockVisionAssistant(live_enabled=True)
    gw = _gateway(assistant)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="interrupt"))
        assert gw.stats()["rateTrackedClients"] == 1
        assert gw.stats()["liveSessionCount"] == 1
        await gw.on_disconnect(session)
        return session

    asyncio.run(scenario())
    assert sock.sent[-1]["type"] == "gemini_response"
    assert gw.stats() == {
        "connectedClients": 0,
        "liveSessionCount": 0,
        "fallbackClientCount": 0,
        "bufferedAudioClients": 0,
        "rateTrackedClients": 0,
    }


def test_broadcast_to_joined_session() -> None:
    gw = _gateway()
    a, b, other = FakeSocket(), FakeSocket(), FakeSocket()

    async def scenario():
        sa = await gw.on_connect(a)
        sb = await gw.on_connect(b)
        so = await gw.on_connect(other)
        await gw.on_message(sa, _msg(type="join_session", sessionId="site-7"))
        await gw.on_message(sb, _msg(type="join_session", sessionId="site-7"))
        await gw.on_message(so, _msg(type="join_session", sessionId="site-8"))
        return await gw.broadcast_to_session("site-7", {"type": "gemini_response", "text": "hi"})

    assert asyncio.run(scenario()) == 2
    assert a.sent[-1] == {"type": "gemini_response", "text": "hi"}
    assert b.sent[-1] == {"type": "gemini_response", "text": "hi"}
    assert other.sent[-1]["type"] == "connected"


def test_undecodable_fallback_audio_replies_and_clears_buffer() -> None:
    assistant = MockVisionAssistant()
    gw = _gateway(assistant)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        # проходит схему (>= 16 символов), но не декодируется как base64
        await gw.on_message(session, _msg(type="audio", audio="A" * 17))
        await gw.on_message(session, _msg(type="audio_stream_end"))
        return session

    session = asyncio.run(scenario())
    assert session.audio_buffer is None
    assert assistant.analyzed_audio == []
    assert sock.sent[-1] == {"type": "gemini_response", "text": FALLBACK_AUDIO_FAILED_TEXT}


class _BrokenResponse:
    def to_wire(self) -> dict:
        raise TypeError("safety flags are malformed")


class BrokenResponseAssistant(MockVisionAssistant):
    async def analyze_video_frame(self, msg):
        return _BrokenResponse()


def test_handler_failure_replies_error_and_keeps_serving() -> None:
    gw = _gateway(BrokenResponseAssistant())
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await gw.on_message(session, _msg(type="video_frame", frame="F" * 64, timestamp=1))
        await gw.on_message(session, _msg(type="interrupt"))
        return session

    session = asyncio.run(scenario())
    assert session.id in gw.registry
    assert sock.sent[1] == {"type": "error", "message": HANDLER_FAILED_TEXT}
    assert sock.sent[2]["type"] == "gemini_response"


class SlowEngine:
    def __init__(self, delay_sec: float = 0.2) -> None:
        self.delay_sec = delay_sec
        self.started = 0
        self.finished = 0

    async def run_action(self, req):
        self.started += 1
        await asyncio.sleep(self.delay_sec)
        self.finished += 1
        return completed_result("Ticket T-1 created", "T-1")


def _voice_gateway(engine: SlowEngine, store: MemoryInspectionStore) -> RealtimeGateway:
    return RealtimeGateway(
        settings=_settings(assistant_turn_timeout_sec=0.05),
        assistant=MockVisionAssistant(live_enabled=True),
        store=store,
        engine=engine,
    )


async def _speak(gw: RealtimeGateway, session, inspection_id: str) -> None:
    await gw.on_message(session, _msg(type="inspection_context", inspectionId=inspection_id))
    await gw.on_message(
        session,
        _msg(type="audio", audio=_chunk(b"z" * 16), transcript="please create a ticket for this fault"),
    )
    await gw.on_message(session, _msg(type="audio_stream_end"))


def test_voice_workflow_is_not_bound_by_assistant_turn_timeout() -> None:
    store = MemoryInspectionStore()
    inspection = store.create_inspection(technician_id="tech-1", site_id="site-1")
    engine = SlowEngine()
    gw = _voice_gateway(engine, store)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await _speak(gw, session, inspection.id)
        assert engine.finished == 0
        await session.drain_workflows()

    asyncio.run(scenario())
    texts = [m.get("text") for m in sock.sent]
    assert engine.started == 1
    assert engine.finished == 1
    assert LIVE_TURN_FAILED_TEXT not in texts
    assert "Received 1 audio chunk(s)." in texts
    assert sock.sent[-1]["text"] == "Voice workflow executed (create_ticket): Ticket T-1 created"
    events = store.list_workflow_events(inspection.id)
    assert [e.external_reference_id for e in events] == ["T-1"]


def test_disconnect_waits_for_running_voice_workflow() -> None:
    store = MemoryInspectionStore()
    inspection = store.create_inspection(technician_id="tech-1", site_id="site-1")
    engine = SlowEngine()
    gw = _voice_gateway(engine, store)
    sock = FakeSocket()

    async def scenario():
        session = await gw.on_connect(sock)
        await _speak(gw, session, inspection.id)
        await gw.on_disconnect(session)
        return session

    session = asyncio.run(scenario())
    assert engine.finished == 1
    assert session.workflow_tasks == set()
    assert len(store.list_workflow_events(inspection.id)) == 1
    assert gw.stats()["connectedClients"] == 0
    assert sock.sent[-1]["text"] == "Voice workflow executed (create_ticket): Ticket T-1 created"
