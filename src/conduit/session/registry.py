"""SessionRegistry — the single synchronized channel → session store."""

from __future__ import annotations

import threading

from conduit.session.models import Session


class SessionRegistry:
    """Keyed store of live sessions, at most one per channel.

    Thread-safe: every access is serialized through a ``threading.Lock``.
    Not a cache; entries leave only through explicit removal.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def lookup(self, channel_id: str) -> Session | None:
        """Return the session for *channel_id*, or ``None``."""
        with self._lock:
            return self._sessions.get(channel_id)

    def put(self, channel_id: str, session: Session) -> None:
        """Store *session*, replacing any existing entry.

        Does not tear the old entry down; callers end it first.
        """
        with self._lock:
            self._sessions[channel_id] = session

    def remove(self, channel_id: str) -> Session | None:
        """Remove and return the entry for *channel_id*. No-op if absent."""
        with self._lock:
            return self._sessions.pop(channel_id, None)

    def discard(self, channel_id: str, session: Session) -> bool:
        """Remove the entry only if it is still *session*.

        Used by exit handlers so a stale process never evicts the
        session that replaced it.
        """
        with self._lock:
            if self._sessions.get(channel_id) is not session:
                return False
            del self._sessions[channel_id]
            return True

    def snapshot(self) -> dict[str, Session]:
        """Return a shallow copy of all entries."""
        with self._lock:
            return dict(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, channel_id: object) -> bool:
        with self._lock:
            return channel_id in self._sessions
