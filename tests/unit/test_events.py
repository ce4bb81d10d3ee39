"""Tests for finalization notifications."""

import asyncio

import pytest

from app.core.mediation.events import (
    LocalFinalizationNotifier,
    get_finalization_notifier,
    set_finalization_notifier,
)
from app.core.mediation.types import MessageRecord, SOLUTION_AUTHOR
from app.models.database import MessageRole

def _entry(session_id: str) -> MessageRecord:
    return MessageRecord(
        session_id=session_id,
        role=MessageRole.ASSISTANT,
        author=SOLUTION_AUTHOR,
        text="shared",
    )

class TestLocalFinalizationNotifier:
    """Test the in-process notifier."""

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        """Test waiting on an unfinalized session."""
        notifier = LocalFinalizationNotifier()

        assert await notifier.wait("s1", timeout=0.01) is False
        assert not notifier.is_finalized("s1")

    @pytest.mark.asyncio
    async def test_wait_after_publish(self):
        """Test a late waiter returns at once."""
        notifier = LocalFinalizationNotifier()
        await notifier.publish("s1", _entry("s1"))

        assert await notifier.wait("s1", timeout=0.01) is True
        assert notifier.is_finalized("s1")

    @pytest.mark.asyncio
    async def test_wakes_waiter(self):
        """Test a pending waiter is released by publish."""
        notifier = LocalFinalizationNotifier()

        waiter = asyncio.create_task(notifier.wait("s1", timeout=5))
        await asyncio.sleep(0)
        await notifier.publish("s1", _entry("s1"))

        assert await waiter is True

    @pytest.mark.asyncio
    async def test_sessions_independent(self):
        """Test events are per session."""
        notifier = LocalFinalizationNotifier()
        await notifier.publish("s1", _entry("s1"))

        assert await notifier.wait("s2", timeout=0.01) is False

    @pytest.mark.asyncio
    async def test_timed_out_waits_leave_nothing_behind(self):
        """Test expired waits on many sessions keep no per-session state."""
        notifier = LocalFinalizationNotifier()

        for i in range(1000):
            assert await notifier.wait(f"s{i}", timeout=0) is False

        assert notifier.pending_sessions() == 0

    @pytest.mark.asyncio
    async def test_woken_waiters_leave_nothing_behind(self):
        """Test the event is dropped once every waiter on it returned."""
        notifier = LocalFinalizationNotifier()

        waiters = [
            asyncio.create_task(notifier.wait("s1", timeout=5))
            for _ in range(3)
        ]
        await asyncio.sleep(0)
        assert notifier.pending_sessions() == 1

        await notifier.publish("s1", _entry("s1"))

        assert await asyncio.gather(*waiters) == [True, True, True]
        assert notifier.pending_sessions() == 0

    @pytest.mark.asyncio
    async def test_finalized_cache_is_bounded(self):
        """Test only the most recently finalized sessions are remembered."""
        notifier = LocalFinalizationNotifier(max_finalized=3)

        for i in range(10):
            await notifier.publish(f"s{i}", _entry(f"s{i}"))

        assert not notifier.is_finalized("s0")
        assert not notifier.is_finalized("s6")
        assert all(notifier.is_finalized(f"s{i}") for i in (7, 8, 9))
        assert notifier.pending_sessions() == 0


class TestNotifierRegistry:
    """Test the process-wide notifier."""

    def test_default_is_local(self):
        """Test the default notifier."""
        set_finalization_notifier(None)

        assert isinstance(get_finalization_notifier(), LocalFinalizationNotifier)

    def test_install(self):
        """Test installing a notifier."""
        custom = LocalFinalizationNotifier()
        set_finalization_notifier(custom)
        try:
            assert get_finalization_notifier() is custom
        finally:
            set_finalization_notifier(None)
