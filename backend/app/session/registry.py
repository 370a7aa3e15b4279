from __future__ import annotations

import time
from threading import Lock


class SessionRegistry:
    """
    Live interview controllers keyed by session id.
    """

    def __init__(self):
        self._lock = Lock()
        self._sessions: dict[str, dict] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def register(self, session_id: str, controller) -> None:
        with self._lock:
            self._sessions[session_id] = {
                "controller": controller,
                "created_at": time.time(),
                "updated_at": time.time(),
                "active": True,
            }

    def touch(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._sessions:
                self._sessions[session_id]["updated_at"] = time.time()
                self._sessions[session_id]["active"] = True

    def mark_inactive(self, session_id: str) -> None:
        with self._lock:
            if session_id in self._sessions:
                self._sessions[session_id]["active"] = False
                self._sessions[session_id]["updated_at"] = time.time()

    def get(self, session_id: str) -> dict | None:
        with self._lock:
            item = self._sessions.get(session_id)
            return dict(item) if item else None

    def controller(self, session_id: str):
        item = self.get(session_id)
        return item.get("controller") if item else None

    def remove(self, session_id: str):
        with self._lock:
            item = self._sessions.pop(session_id, None)
        return item.get("controller") if item else None

    def cleanup_inactive(self, ttl_sec: float, idle_ttl_sec: float | None = None) -> list:
        """
        Drop inactive entries older than the TTL, and entries still flagged
        active that nothing has touched for `idle_ttl_sec` (defaults to the
        TTL). Returns their controllers so the caller can close them on the
        event loop.
        """
        now_ts = time.time()
        ttl = max(30.0, float(ttl_sec or 900.0))
        idle_ttl = max(ttl, float(idle_ttl_sec or ttl))
        removed = []
        with self._lock:
            for session_id, data in list(self._sessions.items()):
                updated_at = float((data or {}).get("updated_at") or 0.0)
                cutoff = now_ts - (idle_ttl if bool((data or {}).get("active", False)) else ttl)
                if updated_at <= cutoff:
                    item = self._sessions.pop(session_id, None)
                    removed.append((item or {}).get("controller"))
        return [controller for controller in removed if controller is not None]


session_registry = SessionRegistry()
