import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.interview.evaluator import HeuristicAnswerEvaluator
from app.interview.gateway import InMemoryInterviewGateway
from app.interview.models import SessionState
from app.session.registry import SessionRegistry
from app.session.runtime import InterviewRuntime


@pytest.fixture
def runtime(backend):
    return InterviewRuntime(
        InMemoryInterviewGateway(HeuristicAnswerEvaluator()),
        backend_factory=lambda: backend,
        registry=SessionRegistry(),
    )


@pytest.fixture
def client(runtime):
    from app.main import app

    app.state.runtime = runtime
    with TestClient(app) as test_client:
        yield test_client


def _create(client, **overrides) -> str:
    body = {"title": "Backend practice", "interview_type": "technical", "question_count": 2}
    body.update(overrides)
    res = client.post("/interviews", json=body)
    assert res.status_code == 200
    payload = res.json()
    assert payload["success"] is True
    return payload["data"]["session_id"]


def test_healthz_and_metrics(client):
    assert client.get("/healthz").json()["status"] == "ok"
    metrics = client.get("/metrics").json()
    assert "answers_submitted" in metrics
    assert metrics["qa_mode"] is True


def test_interview_flow_over_http(client, runtime):
    session_id = _create(client)

    idle = client.get(f"/interviews/{session_id}").json()
    assert idle["state"] == "idle"
    assert idle["progress"]["total_questions"] == 2

    started = client.post(f"/interviews/{session_id}/start").json()
    assert started["success"] is True
    assert started["session"]["state"] == "active"
    assert started["session"]["current_question"]["question_id"] == "q1"

    drafted = client.put(f"/interviews/{session_id}/draft", json={"text": "hash maps use buckets"}).json()
    assert drafted["session"]["draft"]["text"] == "hash maps use buckets"

    first = client.post(f"/interviews/{session_id}/submit-answer", json={"question_id": "q1"}).json()
    assert first["success"] is True
    assert first["session"]["answers"][0]["text"] == "hash maps use buckets"
    assert first["session"]["progress"]["current_question_index"] == 1

    last = client.post(
        f"/interviews/{session_id}/submit-answer",
        json={"question_id": "q2", "text": "threads share memory", "analysis": {"word_count": 3, "confidence": 91}},
    ).json()
    assert last["success"] is True
    assert last["data"]["completed"] is True
    assert last["session"]["state"] == "completed"
    assert last["session"]["performance"]["answered_questions"] == 2
    assert last["session"]["answers"][1]["analysis"]["confidence"] == 91
    assert runtime.registry.get(session_id)["active"] is False


def test_noops_and_validation_errors_are_values_not_http_errors(client):
    session_id = _create(client)
    client.post(f"/interviews/{session_id}/start")

    client.post(f"/interviews/{session_id}/pause")
    again = client.post(f"/interviews/{session_id}/pause")
    assert again.status_code == 200
    assert again.json()["success"] is False
    assert again.json()["noop"] is True

    ahead = client.post(f"/interviews/{session_id}/submit-answer", json={"question_id": "q2", "text": "skip"})
    assert ahead.status_code == 200
    assert ahead.json()["error_kind"] == "invalid_transition"


def test_busy_session_returns_409(client, runtime):
    session_id = _create(client)
    controller = runtime.registry.controller(session_id)
    controller._state = SessionState.LOADING  # test-only: simulate an in-flight call

    res = client.post(f"/interviews/{session_id}/start")

    assert res.status_code == 409
    assert res.json()["detail"]["error_kind"] == "session_busy"


def test_unknown_session_returns_404(client):
    res = client.get("/interviews/does-not-exist")

    assert res.status_code == 404
    assert res.json()["detail"]["error_kind"] == "not_found"


def test_controller_is_restored_from_the_store(client, runtime):
    session_id = _create(client)
    client.post(f"/interviews/{session_id}/start")
    runtime.registry.remove(session_id)

    restored = client.get(f"/interviews/{session_id}").json()

    assert restored["state"] == "active"
    assert restored["current_question"]["question_id"] == "q1"


def test_live_analysis_defaults_to_zeroed_snapshot(client):
    session_id = _create(client)

    analysis = client.get(f"/interviews/{session_id}/analysis").json()

    assert analysis["word_count"] == 0
    assert analysis["filler_count"] == 0


def _receive_until(ws, message_type: str) -> dict:
    for _ in range(20):
        message = ws.receive_json()
        if message["type"] == message_type:
            return message
    raise AssertionError(f"no {message_type} message received")


def test_websocket_recording_commands_and_audio(client, runtime, backend):
    session_id = _create(client)
    client.post(f"/interviews/{session_id}/start")

    with client.websocket_connect(f"/ws/interviews/{session_id}") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "state"
        assert hello["payload"]["state"] == "active"

        ws.send_json({"type": "start_recording"})
        ack = _receive_until(ws, "ack")
        assert ack["payload"]["success"] is True

        ws.send_bytes(b"\x00\x01\x02\x03")
        ws.send_json({"type": "ping"})
        _receive_until(ws, "pong")
        assert backend.audio == [b"\x00\x01\x02\x03"]

        ws.send_json({"type": "stop_recording"})
        ws.send_json({"type": "ping"})
        _receive_until(ws, "pong")
        assert runtime.registry.controller(session_id).is_recording is False

        ws.send_json({"type": "dance"})
        error = _receive_until(ws, "error")
        assert "unknown command" in error["payload"]["error"]

    # disconnect hands the session to the inactive TTL
    assert runtime.registry.get(session_id)["active"] is False


def test_websocket_rejects_unknown_session(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/interviews/missing") as ws:
            ws.receive_json()


def test_submitted_analysis_keeps_the_full_keyword_set(client):
    session_id = _create(client, question_count=2)
    client.post(f"/interviews/{session_id}/start")
    keywords = [f"term{i}" for i in range(25)]

    full = client.post(
        f"/interviews/{session_id}/submit-answer",
        json={
            "question_id": "q1",
            "text": "an answer with many terms",
            "analysis": {"word_count": 25, "keywords": keywords[:20], "all_keywords": keywords},
        },
    ).json()
    assert full["session"]["answers"][0]["analysis"]["all_keywords"] == keywords

    display_only = client.post(
        f"/interviews/{session_id}/submit-answer",
        json={"question_id": "q2", "text": "short answer", "analysis": {"keywords": ["cache", "shard"]}},
    ).json()
    assert display_only["session"]["answers"][1]["analysis"]["all_keywords"] == ["cache", "shard"]
