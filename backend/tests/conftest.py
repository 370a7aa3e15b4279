import asyncio
import os
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# core.config reads the environment once at import time
os.environ.setdefault("QA_MODE", "true")
os.environ.setdefault("OPENAI_API_KEY", "test-key")


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("QA_MODE", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("DEEPGRAM_API_KEY", raising=False)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeRecognitionBackend:
    """
    Drives a RecognitionListener by hand. Keeps every listener it was started
    with so tests can deliver events from stale runs.
    """

    def __init__(self, start_error: Exception | None = None):
        self.start_error = start_error
        self.listeners = []
        self.stop_calls = 0
        self.audio = []

    @property
    def listener(self):
        return self.listeners[-1] if self.listeners else None

    def start(self, listener) -> None:
        if self.start_error is not None:
            raise self.start_error
        self.listeners.append(listener)

    def stop(self) -> None:
        self.stop_calls += 1

    def send_audio(self, audio_bytes: bytes) -> None:
        self.audio.append(audio_bytes)

    def say(self, index: int, text: str, is_final: bool = True) -> None:
        self.listener.on_result(index, text, is_final)


class ScriptedGateway:
    """
    In-memory gateway whose calls can be delayed or made to fail.
    """

    def __init__(self, inner=None):
        from app.interview.evaluator import HeuristicAnswerEvaluator
        from app.interview.gateway import InMemoryInterviewGateway

        self.inner = inner or InMemoryInterviewGateway(HeuristicAnswerEvaluator())
        self.calls: list[str] = []
        self.fail_next: dict[str, Exception] = {}
        self.delay: dict[str, float] = {}
        self.gate: asyncio.Event | None = None

    async def _before(self, name: str) -> None:
        self.calls.append(name)
        if name == "evaluate_answer" and self.gate is not None:
            await self.gate.wait()
        if self.delay.get(name):
            await asyncio.sleep(self.delay[name])
        error = self.fail_next.pop(name, None)
        if error is not None:
            raise error

    async def create_interview(self, config):
        await self._before("create_interview")
        return await self.inner.create_interview(config)

    async def start_interview(self, session_id):
        await self._before("start_interview")
        return await self.inner.start_interview(session_id)

    async def load_interview(self, session_id):
        await self._before("load_interview")
        return await self.inner.load_interview(session_id)

    async def evaluate_answer(self, session_id, question_id, answer_text, media=None, time_spent_sec=0.0):
        await self._before("evaluate_answer")
        return await self.inner.evaluate_answer(session_id, question_id, answer_text, media, time_spent_sec=time_spent_sec)

    async def end_interview(self, session_id):
        await self._before("end_interview")
        return await self.inner.end_interview(session_id)

    async def pause_interview(self, session_id):
        await self._before("pause_interview")
        return await self.inner.pause_interview(session_id)

    async def resume_interview(self, session_id):
        await self._before("resume_interview")
        return await self.inner.resume_interview(session_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeRecognitionBackend:
    return FakeRecognitionBackend()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def make_controller(gateway, backend, clock):
    from app.interview.controller import InterviewSessionController
    from app.transcript.engine import TranscriptStreamAdapter

    def _make(with_adapter: bool = True, **kwargs):
        adapter = TranscriptStreamAdapter(backend, clock=clock) if with_adapter else None
        kwargs.setdefault("analysis_debounce_sec", 0.0)
        return InterviewSessionController(gateway, adapter=adapter, clock=clock, **kwargs)

    return _make
