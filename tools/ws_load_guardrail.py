"""
WS load/auth guardrail для FieldSight gateway (/ws).

Сценарий на одного клиента:
- POST /v1/inspections (контекст для голосовых команд)
- WS connect -> ждём connected
- join_session + inspection_context -> ждём подтверждение
- N аудио-чанков + audio_stream_end -> ждём ответ ассистента (fallback или live)

Опционально: без токена соединение должно закрываться с кодом 4401.
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import math
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import requests
import websockets
from websockets.exceptions import ConnectionClosed


@dataclass
class WsSessionResult:
    session_id: str
    ok: bool
    error: str
    connect_latency_ms: float
    turn_latency_ms: float


def _args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="FieldSight WS load/auth guardrail")
    p.add_argument("--base-url", default="http://127.0.0.1:8080", help="HTTP API base URL")
    p.add_argument("--ws-base-url", default="", help="WS base URL, e.g. ws://127.0.0.1:8080")
    p.add_argument("--token", default="", help="Bearer token (если AUTH_REQUIRED=true)")
    p.add_argument("--sessions", type=int, default=20, help="Количество WS-сессий")
    p.add_argument("--concurrency", type=int, default=5, help="Параллельные сессии")
    p.add_argument("--chunks-per-turn", type=int, default=5, help="Аудио-чанков на реплику")
    p.add_argument(
        "--chunk-b64",
        default=base64.b64encode(b"\x00\x01" * 160).decode("ascii"),
        help="Base64 аудио-чанк",
    )
    p.add_argument("--turn-timeout-sec", type=float, default=30.0, help="Ожидание ответа")
    p.add_argument("--max-failure-rate", type=float, default=0.10, help="Guardrail по ошибкам")
    p.add_argument("--max-p95-turn-ms", type=float, default=5000.0, help="Guardrail p95 реплики")
    p.add_argument(
        "--expect-auth",
        action="store_true",
        help="Проверить, что соединение без токена закрывается с 4401",
    )
    p.add_argument(
        "--report-json",
        default="reports/ws_load_guardrail.json",
        help="Path to JSON report",
    )
    return p.parse_args()


def _percentile(values: list[float], q: float) -> float:
    if not values:
        return 0.0
    if len(values) == 1:
        return values[0]
    ordered = sorted(values)
    pos = (len(ordered) - 1) * q
    low = math.floor(pos)
    high = math.ceil(pos)
    if low == high:
        return ordered[low]
    frac = pos - low
    return ordered[low] * (1.0 - frac) + ordered[high] * frac


def _http_to_ws_base(http_base: str) -> str:
    h = http_base.rstrip("/")
    if h.startswith("https://"):
        return "wss://" + h[len("https://") :]
    if h.startswith("http://"):
        return "ws://" + h[len("http://") :]
    raise ValueError(f"unsupported base url: {http_base}")


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _create_inspection(*, base_url: str, token: str, technician_id: str) -> str:
    r = requests.post(
        f"{base_url}/v1/inspections",
        json={"technicianId": technician_id, "siteId": "ws-guardrail"},
        headers=_auth_headers(token),
        timeout=15,
    )
    r.raise_for_status()
    return str(r.json()["id"])


async def _recv_until(conn, msg_type: str, timeout_sec: float) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_sec
    while True:
        left = deadline - time.monotonic()
        if left <= 0:
            raise TimeoutError(f"no {msg_type} within {timeout_sec}s")
        data = json.loads(await asyncio.wait_for(conn.recv(), timeout=left))
        if data.get("type") == "error":
            raise RuntimeError(f"server error: {data.get('message')}")
        if data.get("type") == msg_type:
            return data


async def _expect_unauthorized(ws_url: str) -> bool:
    try:
        async with websockets.connect(ws_url) as conn:
            await conn.recv()
    except ConnectionClosed as e:
        return e.rcvd is not None and e.rcvd.code == 4401
    return False


async def _run_one_session(
    *,
    base_url: str,
    ws_url: str,
    token: str,
    session_id: str,
    chunks_per_turn: int,
    chunk_b64: str,
    turn_timeout_sec: float,
) -> WsSessionResult:
    def _fail(error: str, connect_ms: float = 0.0) -> WsSessionResult:
        return WsSessionResult(
            session_id=session_id,
            ok=False,
            error=error,
            connect_latency_ms=connect_ms,
            turn_latency_ms=0.0,
        )

    try:
        inspection_id = await asyncio.to_thread(
            _create_inspection, base_url=base_url, token=token, technician_id=session_id
        )
    except Exception as e:
        return _fail(f"inspection create failed: {e}")

    url = f"{ws_url}?token={token}" if token else ws_url
    started = time.perf_counter()
    try:
        async with websockets.connect(url, additional_headers=_auth_headers(token)) as conn:
            await _recv_until(conn, "connected", turn_timeout_sec)
            connect_ms = (time.perf_counter() - started) * 1000.0

            await conn.send(json.dumps({"type": "join_session", "sessionId": session_id}))
            await conn.send(
                json.dumps({"type": "inspection_context", "inspectionId": inspection_id})
            )
            await _recv_until(conn, "gemini_response", turn_timeout_sec)

            turn_started = time.perf_counter()
            for _ in range(chunks_per_turn):
                await conn.send(
                    json.dumps(
                        {
                            "type": "audio",
                            "audio": chunk_b64,
                            "mimeType": "audio/pcm;rate=16000",
                            "sampleRate": 16000,
                            "timestamp": int(time.time() * 1000),
                        }
                    )
                )
            await conn.send(json.dumps({"type": "audio_stream_end"}))
            await _recv_until(conn, "gemini_response", turn_timeout_sec)
            turn_ms = (time.perf_counter() - turn_started) * 1000.0
    except Exception as e:
        return _fail(f"ws session failed: {e}")

    return WsSessionResult(
        session_id=session_id,
        ok=True,
        error="",
        connect_latency_ms=connect_ms,
        turn_latency_ms=turn_ms,
    )


async def _run_load(args: argparse.Namespace) -> dict[str, Any]:
    base_url = args.base_url.rstrip("/")
    ws_url = (args.ws_base_url or _http_to_ws_base(base_url)).rstrip("/") + "/ws"
    run_id = int(time.time())

    unauthorized_ok = await _expect_unauthorized(ws_url) if args.expect_auth else True

    semaphore = asyncio.Semaphore(max(1, args.concurrency))
    results: list[WsSessionResult] = []

    async def run_limited(idx: int) -> None:
        async with semaphore:
            res = await _run_one_session(
                base_url=base_url,
                ws_url=ws_url,
                token=args.token,
                session_id=f"ws-load-{run_id}-{idx}",
                chunks_per_turn=args.chunks_per_turn,
                chunk_b64=args.chunk_b64,
                turn_timeout_sec=args.turn_timeout_sec,
            )
            results.append(res)

    await asyncio.gather(*(run_limited(i) for i in range(args.sessions)))

    turn_latencies = [r.turn_latency_ms for r in results if r.ok]
    failed = [r for r in results if not r.ok]
    failure_rate = (len(failed) / len(results)) if results else 1.0
    p95_turn = _percentile(turn_latencies, 0.95)

    checks = {
        "unauthorized_close": {
            "ok": unauthorized_ok,
            "checked": bool(args.expect_auth),
        },
        "failure_rate": {
            "ok": failure_rate <= args.max_failure_rate,
            "actual": failure_rate,
            "threshold": args.max_failure_rate,
        },
        "p95_turn_ms": {
            "ok": p95_turn <= args.max_p95_turn_ms,
            "actual": p95_turn,
            "threshold": args.max_p95_turn_ms,
        },
    }

    return {
        "scenario": {
            "base_url": base_url,
            "ws_url": ws_url,
            "sessions": args.sessions,
            "concurrency": args.concurrency,
            "chunks_per_turn": args.chunks_per_turn,
            "max_failure_rate": args.max_failure_rate,
            "max_p95_turn_ms": args.max_p95_turn_ms,
        },
        "summary": {
            "runs_total": len(results),
            "runs_failed": len(failed),
            "failure_rate": failure_rate,
            "p95_connect_ms": _percentile([r.connect_latency_ms for r in results if r.ok], 0.95),
            "p95_turn_ms": p95_turn,
        },
        "checks": checks,
        "failed_runs": [{"session_id": r.session_id, "error": r.error} for r in failed[:20]],
        "results": [asdict(r) for r in results],
    }


def main() -> int:
    args = _args()
    report = asyncio.run(_run_load(args))
    report_path = Path(args.report_json)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")

    checks = report.get("checks", {})
    all_ok = all(bool(v.get("ok")) for v in checks.values())
    summary = report.get("summary", {})
    print(
        "ws load guardrail "
        + ("OK" if all_ok else "FAILED")
        + f": failed={summary.get('runs_failed', 0)}/{summary.get('runs_total', 0)}, "
        + f"failure_rate={summary.get('failure_rate', 1.0):.3f}, "
        + f"p95_turn_ms={summary.get('p95_turn_ms', 0.0):.1f}"
    )
    print(f"report: {report_path}")
    return 0 if all_ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
