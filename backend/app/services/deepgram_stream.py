import asyncio
import logging
import time

logger = logging.getLogger("deepgram_stream")


class DeepgramStreamGuard:
	"""
	Reliability helper for Deepgram stream consumers.
	Tracks event ordering and ends a stalled run so the adapter restarts it.
	"""

	def __init__(self, on_stall, stall_timeout_sec: float = 10.0, poll_interval_sec: float = 5.0):
		self._on_stall = on_stall
		self.stall_timeout_sec = stall_timeout_sec
		self.poll_interval_sec = poll_interval_sec
		self.last_event_ts = 0.0
		self.last_audio_time = time.monotonic()
		self._stopped = False

	def reset(self):
		self.last_event_ts = 0.0
		self.last_audio_time = time.monotonic()
		self._stopped = False

	def note_audio_activity(self):
		self.last_audio_time = time.monotonic()

	def stop(self):
		self._stopped = True

	@property
	def stopped(self) -> bool:
		return self._stopped

	def is_in_order(self, start_ts: float) -> bool:
		event_ts = start_ts or 0
		if event_ts < self.last_event_ts:
			logger.warning("Deepgram out-of-order event ignored")
			return False
		self.last_event_ts = event_ts
		return True

	def is_stalled(self) -> bool:
		return time.monotonic() - self.last_audio_time > self.stall_timeout_sec

	async def watchdog(self):
		try:
			while not self._stopped:
				await asyncio.sleep(self.poll_interval_sec)
				if self._stopped:
					break

				if self.is_stalled():
					logger.error("Deepgram stalled, ending run")
					self._stopped = True
					self._on_stall()
		finally:
			logger.info("[DG] Watchdog terminated")
