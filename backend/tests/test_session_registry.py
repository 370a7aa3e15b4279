import time

import pytest

from app.interview.evaluator import HeuristicAnswerEvaluator
from app.interview.gateway import InMemoryInterviewGateway
from app.interview.models import InterviewConfig
from app.session.registry import SessionRegistry
from app.session.runtime import InterviewRuntime
from app.system_metrics import get_metrics_snapshot


def test_session_registry_register_touch_inactive_cleanup():
    registry = SessionRegistry()
    controller = object()

    registry.register("s1", controller)
    item = registry.get("s1")
    assert item is not None
    assert item["active"] is True
    assert registry.controller("s1") is controller

    before_touch = float(item["updated_at"])
    time.sleep(0.01)
    registry.touch("s1")
    after_touch = float(registry.get("s1")["updated_at"])
    assert after_touch >= before_touch

    registry.mark_inactive("s1")
    assert registry.get("s1")["active"] is False

    # ttl=0 clamps internally to >=30s; force old timestamp for deterministic cleanup
    registry._sessions["s1"]["updated_at"] = time.time() - 3600  # test-only direct mutation
    removed = registry.cleanup_inactive(ttl_sec=0)
    assert removed == [controller]
    assert registry.get("s1") is None


def test_active_and_recent_sessions_survive_cleanup():
    registry = SessionRegistry()
    registry.register("live", object())
    registry.register("recent", object())
    registry.mark_inactive("recent")
    registry._sessions["live"]["updated_at"] = time.time() - 120

    assert registry.cleanup_inactive(ttl_sec=60, idle_ttl_sec=3600) == []
    assert registry.get("live") is not None
    assert registry.get("recent") is not None


def test_abandoned_active_session_is_reclaimed_after_idle_ttl():
    registry = SessionRegistry()
    abandoned = object()
    registry.register("abandoned", abandoned)
    registry._sessions["abandoned"]["updated_at"] = time.time() - 30 * 86400

    assert registry.cleanup_inactive(ttl_sec=60) == [abandoned]
    assert registry.get("abandoned") is None
    assert len(registry) == 0


def test_idle_ttl_never_undercuts_the_inactive_ttl():
    registry = SessionRegistry()
    registry.register("live", object())
    registry._sessions["live"]["updated_at"] = time.time() - 120

    assert registry.cleanup_inactive(ttl_sec=600, idle_ttl_sec=60) == []


def test_touch_reactivates_and_remove_returns_controller():
    registry = SessionRegistry()
    controller = object()
    registry.register("s1", controller)
    registry.mark_inactive("s1")

    registry.touch("s1")
    assert registry.get("s1")["active"] is True

    assert registry.remove("s1") is controller
    assert registry.remove("s1") is None
    assert registry.controller("s1") is None


@pytest.mark.asyncio
async def test_runtime_cleanup_closes_abandoned_started_session(backend):
    registry = SessionRegistry()
    runtime = InterviewRuntime(
        InMemoryInterviewGateway(HeuristicAnswerEvaluator()),
        backend_factory=lambda: backend,
        registry=registry,
    )
    controller, created = await runtime.create(InterviewConfig(question_count=2))
    assert created.success
    assert (await controller.start()).success
    assert controller.begin_recording().success
    runtime.sync(controller)
    registry._sessions[controller.session_id]["updated_at"] = time.time() - 30 * 86400

    removed = await runtime.cleanup(60)

    assert removed == 1
    assert registry.controller(controller.session_id) is None
    assert get_metrics_snapshot()["sessions_registered"] == 0
    assert controller.is_recording is False
    assert backend.stop_calls >= 1


@pytest.mark.asyncio
async def test_released_session_expires_with_the_inactive_ttl():
    registry = SessionRegistry()
    runtime = InterviewRuntime(InMemoryInterviewGateway(HeuristicAnswerEvaluator()), registry=registry)
    controller, _ = await runtime.create(InterviewConfig(question_count=1))
    await controller.start()

    runtime.release(controller)
    assert registry.get(controller.session_id)["active"] is False
    registry._sessions[controller.session_id]["updated_at"] = time.time() - 120

    assert await runtime.cleanup(60, idle_ttl_sec=86400) == 1
