from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger("session_event_bus")

SessionEventHandler = Callable[[str, Any], None]

TOPIC_STATE = "state"
TOPIC_TRANSCRIPT = "transcript"
TOPIC_ANALYSIS = "analysis"
TOPIC_WARNING = "warning"

TOPICS = frozenset({TOPIC_STATE, TOPIC_TRANSCRIPT, TOPIC_ANALYSIS, TOPIC_WARNING})


class SessionEventBus:
    """
    Synchronous in-process fan-out for one session. Handlers run in
    subscription order on the caller's thread; a failing handler is logged
    and does not stop delivery to the others.
    """

    def __init__(self, session_id: str = ""):
        self.session_id = session_id
        self._handlers: dict[str, list[SessionEventHandler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: SessionEventHandler) -> Callable[[], None]:
        if topic != "*" and topic not in TOPICS:
            raise ValueError(f"Unknown session event topic: {topic}")
        self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic) or []
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        for handler in list(self._handlers.get(topic, [])) + list(self._handlers.get("*", [])):
            try:
                handler(topic, payload)
            except Exception:
                logger.exception("Session event handler failed | topic=%s session=%s", topic, self.session_id)

    def clear(self) -> None:
        self._handlers.clear()
