"""In-process registry of live relay sessions keyed by connection id."""

import threading
from collections.abc import Callable

from loguru import logger

from .relay_models import FeedHandle, LiveSession


class SessionRegistry:
    """Connection id -> LiveSession map behind a single mutex.

    Every operation is atomic with respect to the others, from the event loop or
    from worker threads. Only `put` closes feed handles (the one it replaces);
    removal hands the session back and the caller closes it, so racing teardown
    paths close each handle exactly once.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, LiveSession] = {}
        self._lock = threading.Lock()

    def put(self, connection_id: str, session: LiveSession) -> LiveSession | None:
        """Install a session, closing and returning whatever it replaced."""
        with self._lock:
            replaced = self._sessions.get(connection_id)
            if replaced is not None and replaced.feed is not session.feed:
                replaced.feed.close()
            self._sessions[connection_id] = session

        if replaced is not None:
            logger.info(
                "Replaced session {} target={} with target={}",
                connection_id, replaced.target, session.target,
            )
        return replaced

    def remove(self, connection_id: str, feed: FeedHandle | None = None) -> LiveSession | None:
        """Remove and return the session for a connection.

        When `feed` is given, the session is only removed if it owns that handle.
        """
        with self._lock:
            session = self._sessions.get(connection_id)
            if session is None:
                return None
            if feed is not None and session.feed is not feed:
                return None
            del self._sessions[connection_id]
            return session

    def remove_where(self, predicate: Callable[[LiveSession], bool]) -> list[LiveSession]:
        with self._lock:
            matched = [s for s in self._sessions.values() if predicate(s)]
            for session in matched:
                del self._sessions[session.connection_id]
            return matched

    def get(self, connection_id: str) -> LiveSession | None:
        with self._lock:
            return self._sessions.get(connection_id)

    def snapshot(self) -> list[LiveSession]:
        """Point-in-time copy ordered by start time."""
        with self._lock:
            sessions = list(self._sessions.values())
        return sorted(sessions, key=lambda s: s.started_at)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._sessions
