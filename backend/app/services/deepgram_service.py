import asyncio
import logging
from typing import Optional

from deepgram import DeepgramClient

from app.interview.errors import DeviceUnavailable
from app.services.deepgram_stream import DeepgramStreamGuard
from app.transcript.models import RecognitionListener
from core.config import (
    DEEPGRAM_API_KEY,
    DEEPGRAM_ENDPOINTING_MS,
    DEEPGRAM_STALL_TIMEOUT_SEC,
    DEEPGRAM_UTTERANCE_END_MS,
    QA_MODE,
)

try:
    from deepgram import LiveOptions, LiveTranscriptionEvents
except ImportError:
    LiveOptions = None
    LiveTranscriptionEvents = None

logger = logging.getLogger("deepgram_service")


def _is_auth_error(error) -> bool:
    text = str(error or "").lower()
    return any(marker in text for marker in ("401", "403", "unauthorized", "forbidden", "invalid credentials"))


class DeepgramRecognitionBackend:
    """
    RecognitionBackend over the Deepgram live API.

    SDK callbacks run on the SDK's own threads; every listener call is
    marshalled onto the event loop that called `start`.
    """

    def __init__(self, enabled: bool | None = None, language_mode: str = "english", api_key: str | None = None):
        self.enabled = (not QA_MODE) if enabled is None else enabled
        self.language = "en" if language_mode == "english" else "multi"
        self.client = None
        if self.enabled:
            key = api_key if api_key is not None else DEEPGRAM_API_KEY
            if not key:
                logger.error("[DG] DEEPGRAM_API_KEY not set - speech-to-text will NOT work")
                self.enabled = False
            else:
                try:
                    self.client = DeepgramClient(api_key=key)
                except TypeError:
                    self.client = DeepgramClient(key)
                except Exception as exc:
                    logger.warning("Deepgram client init failed; disabling stream service: %s", exc)
                    self.enabled = False

        self.connection = None
        self.guard = DeepgramStreamGuard(self._on_stall, stall_timeout_sec=DEEPGRAM_STALL_TIMEOUT_SEC)
        self._listener: Optional[RecognitionListener] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._result_index = 0
        self._stopping = False

    # -------------------------
    # RecognitionBackend
    # -------------------------

    def start(self, listener: RecognitionListener) -> None:
        if not self.enabled:
            raise DeviceUnavailable("Deepgram speech recognition is disabled")
        if LiveOptions is None or LiveTranscriptionEvents is None:
            raise DeviceUnavailable("Deepgram live streaming symbols unavailable in installed SDK")
        if self.client is None:
            raise DeviceUnavailable("Deepgram client unavailable")

        self._safe_finish_connection()
        self._listener = listener
        self._result_index = 0
        self._stopping = False
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        self.connection = self.client.listen.live.v("1")
        self.connection.on(LiveTranscriptionEvents.Transcript, self._on_transcript)
        self.connection.on(LiveTranscriptionEvents.SpeechStarted, self._on_speech_started)
        self.connection.on(LiveTranscriptionEvents.UtteranceEnd, self._on_utterance_end)
        self.connection.on(LiveTranscriptionEvents.Close, self._on_close)
        self.connection.on(LiveTranscriptionEvents.Error, self._on_error)

        options = LiveOptions(
            model="nova-2",
            language=self.language,
            encoding="linear16",
            sample_rate=16000,
            channels=1,
            interim_results=True,
            punctuate=True,
            endpointing=DEEPGRAM_ENDPOINTING_MS,
            utterance_end_ms=str(DEEPGRAM_UTTERANCE_END_MS),
            vad_events=True,
            smart_format=True,
        )

        # start() is SYNC in Deepgram SDK 3.x and returns False on failure
        started = self.connection.start(options)
        if started is False:
            self.connection = None
            raise DeviceUnavailable("Deepgram live connection could not be opened")

        self.guard.reset()
        if self._loop is not None and (self._watchdog_task is None or self._watchdog_task.done()):
            self._watchdog_task = self._loop.create_task(self.guard.watchdog())
        logger.info("[DG] Recognition run started | language=%s", self.language)

    def stop(self) -> None:
        self._stopping = True
        self._listener = None
        self.guard.stop()
        if self._watchdog_task and not self._watchdog_task.done():
            self._watchdog_task.cancel()
        self._watchdog_task = None
        self._safe_finish_connection()
        logger.info("[DG] Service stopped")

    def send_audio(self, audio_bytes: bytes) -> None:
        if not self.enabled or not self.connection:
            return
        self.guard.note_audio_activity()
        if isinstance(audio_bytes, bytearray):
            audio_bytes = bytes(audio_bytes)
        self.connection.send(audio_bytes)

    # -------------------------
    # SDK EVENT HANDLERS
    # -------------------------

    def _on_transcript(self, client, result=None, **kwargs):
        try:
            channel = result.channel
            if not channel or not channel.alternatives:
                return

            text = channel.alternatives[0].transcript.strip()
            if not text:
                return

            if not self.guard.is_in_order(getattr(result, "start", 0)):
                return

            index = self._result_index
            is_final = bool(result.is_final)
            if is_final:
                self._result_index += 1
            self._dispatch("on_result", index, text, is_final)
        except Exception as e:
            logger.error("Deepgram transcript parse error: %s", e)

    def _on_speech_started(self, client, speech_started=None, **kwargs):
        self._dispatch("on_audio_start")

    def _on_utterance_end(self, client, utterance_end=None, **kwargs):
        self._dispatch("on_audio_end")

    def _on_close(self, client, close=None, **kwargs):
        if self._stopping:
            return
        logger.warning("[DG] Connection closed by server")
        self._dispatch("on_end")

    def _on_error(self, client, error=None, **kwargs):
        logger.error("Deepgram error event: %s", error)
        if _is_auth_error(error):
            self._dispatch("on_error", "not-allowed", str(error))
        else:
            self._dispatch("on_error", "network", str(error))

    def _on_stall(self):
        self._safe_finish_connection()
        self._dispatch("on_end")

    # -------------------------
    # INTERNALS
    # -------------------------

    def _dispatch(self, method: str, *args) -> None:
        listener = self._listener
        if listener is None:
            return
        callback = getattr(listener, method)
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback, *args)
        else:
            callback(*args)

    def _safe_finish_connection(self):
        if not self.connection:
            return
        connection = self.connection
        self.connection = None
        stopping = self._stopping
        self._stopping = True
        try:
            connection.finish()
        except Exception as exc:
            logger.warning("Deepgram finish() ignored during cleanup: %s", exc)
        finally:
            self._stopping = stopping
