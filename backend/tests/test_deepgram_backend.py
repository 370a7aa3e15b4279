import asyncio
from types import SimpleNamespace

import pytest

from app.interview.errors import DeviceUnavailable
from app.services.deepgram_service import DeepgramRecognitionBackend
from app.services.deepgram_stream import DeepgramStreamGuard
from app.transcript.engine import TranscriptStreamAdapter


class RecordingListener:
    def __init__(self):
        self.events = []

    def on_result(self, index, text, is_final):
        self.events.append(("result", index, text, is_final))

    def on_audio_start(self):
        self.events.append(("audio_start",))

    def on_audio_end(self):
        self.events.append(("audio_end",))

    def on_end(self):
        self.events.append(("end",))

    def on_error(self, code, message=""):
        self.events.append(("error", code))


def _result(text: str, is_final: bool, start: float = 0.0):
    alternative = SimpleNamespace(transcript=text)
    return SimpleNamespace(channel=SimpleNamespace(alternatives=[alternative]), is_final=is_final, start=start)


def _bound_backend():
    backend = DeepgramRecognitionBackend(enabled=False)
    listener = RecordingListener()
    backend._listener = listener
    return backend, listener


def test_backend_is_disabled_in_qa_mode():
    backend = DeepgramRecognitionBackend()

    assert backend.enabled is False
    with pytest.raises(DeviceUnavailable):
        backend.start(RecordingListener())


def test_adapter_reports_disabled_backend_as_device_unavailable():
    adapter = TranscriptStreamAdapter(DeepgramRecognitionBackend(enabled=False))

    with pytest.raises(DeviceUnavailable):
        adapter.start(lambda s: None, lambda a: None)


def test_transcript_events_map_to_indexed_results():
    backend, listener = _bound_backend()

    backend._on_transcript(None, result=_result("design a", False, 0.0))
    backend._on_transcript(None, result=_result("design a cache", True, 0.0))
    backend._on_transcript(None, result=_result("  ", True, 1.0))
    backend._on_transcript(None, result=_result("with eviction", True, 1.5))

    assert listener.events == [
        ("result", 0, "design a", False),
        ("result", 0, "design a cache", True),
        ("result", 1, "with eviction", True),
    ]


def test_out_of_order_transcript_is_dropped():
    backend, listener = _bound_backend()

    backend._on_transcript(None, result=_result("later words", True, 4.0))
    backend._on_transcript(None, result=_result("earlier words", True, 2.0))

    assert listener.events == [("result", 0, "later words", True)]


def test_vad_close_and_error_events_are_mapped():
    backend, listener = _bound_backend()

    backend._on_speech_started(None)
    backend._on_utterance_end(None)
    backend._on_error(None, error="HTTP 401 Unauthorized")
    backend._on_error(None, error="socket reset")
    backend._on_close(None)

    assert listener.events == [
        ("audio_start",),
        ("audio_end",),
        ("error", "not-allowed"),
        ("error", "network"),
        ("end",),
    ]


def test_no_events_after_stop():
    backend, listener = _bound_backend()

    backend.stop()
    backend._on_transcript(None, result=_result("ignored", True))
    backend._on_close(None)

    assert listener.events == []


@pytest.mark.asyncio
async def test_sdk_thread_callbacks_are_marshalled_onto_the_loop():
    backend, listener = _bound_backend()
    backend._loop = asyncio.get_running_loop()

    await asyncio.to_thread(backend._on_transcript, None, result=_result("from a worker thread", True))
    await asyncio.sleep(0)
    assert listener.events == [("result", 0, "from a worker thread", True)]


@pytest.mark.asyncio
async def test_stream_guard_ends_stalled_run():
    stalls = []
    guard = DeepgramStreamGuard(lambda: stalls.append(True), stall_timeout_sec=0.01, poll_interval_sec=0.01)
    guard.last_audio_time -= 1.0

    await asyncio.wait_for(guard.watchdog(), timeout=1.0)

    assert stalls == [True]
    assert guard.stopped


def test_stream_guard_orders_by_start_offset():
    guard = DeepgramStreamGuard(lambda: None)

    assert guard.is_in_order(1.0)
    assert guard.is_in_order(1.0)
    assert not guard.is_in_order(0.5)
    guard.reset()
    assert guard.is_in_order(0.5)
