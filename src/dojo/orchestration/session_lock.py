"""Per-session mutual exclusion for turn processing.

Only one turn may be in flight per session. The lock is a coordination
primitive: it carries no business data and is never the record of a
session's status. A lock older than its TTL is treated as left behind by a
crashed turn and is cleared on the next acquire.

InMemorySessionLock is process-local. Deployments running several workers
need a shared implementation (e.g. a key-value store with key expiry) behind
the same SessionLock interface.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TTL_SECONDS = 5 * 60


def skill_lock_key(skill_id: str) -> str:
    """Registry key guarding read-modify-write of a skill record.

    Turns on different sessions of one skill, and the progress endpoints,
    all write the same SkillProgress row; they take this key around each
    load-change-save.
    """
    return f"skill:{skill_id}"


class SessionLock(ABC):
    """Interface for a per-session turn lock."""

    @abstractmethod
    def acquire(self, session_id: str) -> bool:
        """Take the lock. Returns False if another turn holds it."""

    @abstractmethod
    def release(self, session_id: str) -> None:
        """Drop the lock. Releasing an unheld lock is a no-op."""

    @abstractmethod
    def is_locked(self, session_id: str) -> bool:
        """Whether an unexpired lock exists for the session."""


class InMemorySessionLock(SessionLock):
    """Process-local lock registry with TTL expiry.

    Safe to use from many threads and event-loop tasks at once.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the registry.

        Args:
            ttl_seconds: Age after which a held lock is considered stale
            clock: Monotonic time source (overridable in tests)
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._held: dict[str, float] = {}
        self._mutex = threading.Lock()

    def _expired(self, acquired_at: float, now: float) -> bool:
        return now - acquired_at > self.ttl_seconds

    def acquire(self, session_id: str) -> bool:
        key = str(session_id)
        with self._mutex:
            now = self._clock()
            acquired_at = self._held.get(key)
            if acquired_at is not None:
                if not self._expired(acquired_at, now):
                    return False
                logger.warning(
                    f"Clearing stale lock for session {key} "
                    f"(held {now - acquired_at:.0f}s)"
                )
            self._held[key] = now
            return True

    def release(self, session_id: str) -> None:
        with self._mutex:
            self._held.pop(str(session_id), None)

    def is_locked(self, session_id: str) -> bool:
        with self._mutex:
            acquired_at = self._held.get(str(session_id))
            return acquired_at is not None and not self._expired(acquired_at, self._clock())

    def clear_all(self) -> None:
        """Drop every lock (for testing)."""
        with self._mutex:
            self._held.clear()


# Global lock registry instance
_session_lock: SessionLock | None = None


def get_session_lock() -> SessionLock:
    """Get the process-wide session lock registry."""
    global _session_lock
    if _session_lock is None:
        from dojo.core.config import get_settings

        _session_lock = InMemorySessionLock(ttl_seconds=get_settings().lock_ttl_seconds)
    return _session_lock


def reset_session_lock() -> None:
    """Reset the session lock registry (for testing)."""
    global _session_lock
    _session_lock = None
