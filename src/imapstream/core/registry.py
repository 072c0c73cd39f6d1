"""Process-wide bookkeeping of live IMAP sessions.

The host application is expected to call ``close_all()`` from its own
shutdown path (signal handler, ``atexit``, service stop hook) so that
every session logs out cleanly even on abrupt termination.
"""

import threading
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from imapstream.transport.session import Session

logger = structlog.get_logger(__name__)


class SessionRegistry:
    """Thread-safe set of open sessions."""

    def __init__(self) -> None:
        self._sessions: list["Session"] = []
        self._lock = threading.Lock()

    def register(self, session: "Session") -> None:
        """Track a session. Registering the same session twice is a no-op."""
        with self._lock:
            if not any(s is session for s in self._sessions):
                self._sessions.append(session)

    def deregister(self, session: "Session") -> None:
        """Stop tracking a session. Unknown sessions are ignored."""
        with self._lock:
            self._sessions = [s for s in self._sessions if s is not session]

    async def close_all(self) -> int:
        """Close every tracked session.

        The registry is emptied before any session is closed, so sessions
        deregistering themselves during ``close()`` never see a stale entry.

        Returns:
            Number of sessions that were closed.
        """
        with self._lock:
            sessions = self._sessions
            self._sessions = []

        for session in sessions:
            try:
                await session.close()
            except Exception as e:
                logger.warning("session_close_failed", host=session.host, error=str(e))

        if sessions:
            logger.info("sessions_closed", count=len(sessions))
        return len(sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session: object) -> bool:
        with self._lock:
            return any(s is session for s in self._sessions)


default_registry = SessionRegistry()
