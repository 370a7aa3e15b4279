import asyncio
import json
import logging
import os
import time

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.interview.errors import InterviewCoreError
from app.system_metrics import decrement_metric, increment_metric

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

router = APIRouter()
logger = logging.getLogger("ws_session")

MAX_WS_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "65536")))
_OUTBOX_LIMIT = 256
_AUDIO_TOUCH_INTERVAL_SEC = 5.0


@router.websocket("/ws/interviews/{session_id}")
async def interview_ws(websocket: WebSocket, session_id: str):
    runtime = websocket.app.state.runtime
    try:
        controller = await runtime.controller_for(session_id)
    except InterviewCoreError as exc:
        await websocket.close(code=1008, reason=exc.message[:120])
        return

    await websocket.accept()
    increment_metric("ws_connections_active")
    logger.info("WS connected | session_id=%s", session_id)

    outbox: asyncio.Queue = asyncio.Queue(maxsize=_OUTBOX_LIMIT)
    send_lock = asyncio.Lock()

    def _enqueue(message: dict) -> None:
        try:
            outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("WS outbox full, dropping event | session_id=%s type=%s", session_id, message.get("type"))

    def _on_event(topic: str, payload) -> None:
        _enqueue({"type": topic, "session_id": session_id, "payload": payload, "ts": time.time()})

    async def _send(message: dict) -> None:
        if websocket.client_state != WebSocketState.CONNECTED:
            return
        async with send_lock:
            await websocket.send_text(json.dumps(message, default=str))

    async def _drain_outbox() -> None:
        while True:
            message = await outbox.get()
            try:
                await _send(message)
            except Exception as exc:
                logger.warning("WS send failed | session_id=%s err=%s", session_id, exc)
                return

    unsubscribe = controller.subscribe("*", _on_event)
    last_touch = time.monotonic()
    sender = asyncio.create_task(_drain_outbox())
    await _send({"type": "state", "session_id": session_id, "payload": controller.snapshot_view(), "ts": time.time()})

    try:
        while True:
            msg = await websocket.receive()
            if msg["type"] == "websocket.disconnect":
                break

            if msg.get("bytes"):
                if controller.adapter is not None and controller.is_recording:
                    controller.adapter.send_audio(msg["bytes"])
                    if time.monotonic() - last_touch >= _AUDIO_TOUCH_INTERVAL_SEC:
                        runtime.sync(controller)
                        last_touch = time.monotonic()
                continue

            text_payload = str(msg.get("text") or "")
            if not text_payload:
                continue
            if len(text_payload.encode("utf-8")) > MAX_WS_TEXT_BYTES:
                logger.warning("WS message too large | session_id=%s", session_id)
                break
            try:
                payload = json.loads(text_payload)
            except json.JSONDecodeError:
                payload = None
            if not isinstance(payload, dict):
                _enqueue({"type": "error", "session_id": session_id, "payload": {"error": "invalid json"}})
                continue

            command = str(payload.get("type") or "").strip().lower()
            if command == "ping":
                _enqueue({"type": "pong", "session_id": session_id, "ts": time.time()})
                continue

            if command == "start_recording":
                result = controller.begin_recording()
            elif command == "stop_recording":
                controller.stop_recording()
                continue
            elif command == "update_draft":
                result = controller.update_draft(str(payload.get("text") or ""))
            else:
                _enqueue({"type": "error", "session_id": session_id, "payload": {"error": f"unknown command {command}"}})
                continue

            runtime.sync(controller)
            last_touch = time.monotonic()
            _enqueue({"type": "ack", "session_id": session_id, "command": command, "payload": result.to_dict()})
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        controller.stop_recording()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        runtime.release(controller)
        decrement_metric("ws_connections_active")
        logger.info("WS closed | session_id=%s", session_id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
