"""
Finalization notifications.

The coordinator publishes an event when it emits a session's shared
solution entry. Clients waiting on the session status subscribe through
wait(); a client that never waits simply keeps polling.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional

from .types import MessageRecord

logger = logging.getLogger(__name__)


class FinalizationNotifier(ABC):
    """Publishes and awaits "session finalized" events."""

    @abstractmethod
    async def publish(self, session_id: str, entry: MessageRecord) -> None:
        """Announce that `session_id` now has its shared solution entry."""
        pass

    @abstractmethod
    async def wait(self, session_id: str, timeout: float) -> bool:
        """
        Wait until `session_id` is finalized or `timeout` seconds pass.

        Returns:
            True if a finalization event arrived
        """
        pass


class LocalFinalizationNotifier(FinalizationNotifier):
    """
    In-process notifier built on asyncio.Event.

    An event exists only while someone waits on its session. Finalized
    session ids are remembered in a bounded most-recent cache, so late
    waiters return at once and memory stays flat.
    """

    def __init__(self, max_finalized: int = 1024):
        self._events: dict[str, asyncio.Event] = {}
        self._waiters: dict[str, int] = {}
        self._finalized: OrderedDict[str, None] = OrderedDict()
        self.max_finalized = max_finalized

    def _remember(self, session_id: str) -> None:
        self._finalized[session_id] = None
        self._finalized.move_to_end(session_id)
        while len(self._finalized) > self.max_finalized:
            self._finalized.popitem(last=False)

    async def publish(self, session_id: str, entry: MessageRecord) -> None:
        logger.debug(f"Session {session_id} finalized (local event)")
        self._remember(session_id)
        event = self._events.get(session_id)
        if event is not None:
            event.set()

    async def wait(self, session_id: str, timeout: float) -> bool:
        if self.is_finalized(session_id):
            return True

        event = self._events.setdefault(session_id, asyncio.Event())
        self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            remaining = self._waiters[session_id] - 1
            if remaining:
                self._waiters[session_id] = remaining
            else:
                del self._waiters[session_id]
                del self._events[session_id]

    def is_finalized(self, session_id: str) -> bool:
        return session_id in self._finalized

    def pending_sessions(self) -> int:
        """Sessions with at least one waiter."""
        return len(self._events)


# Singleton
_notifier: Optional[FinalizationNotifier] = None


def set_finalization_notifier(notifier: Optional[FinalizationNotifier]) -> None:
    """Install the process-wide notifier (None resets to the local default)."""
    global _notifier
    _notifier = notifier


def get_finalization_notifier() -> FinalizationNotifier:
    """Get the process-wide notifier, local by default."""
    global _notifier
    if _notifier is None:
        _notifier = LocalFinalizationNotifier()
    return _notifier
