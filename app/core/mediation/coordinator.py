"""
Session completion coordination.

Emits the shared solution entry once both partners have a summary. The
check runs after every turn that stored a summary and on every status
poll, possibly concurrently, so it must stay idempotent.
"""

import logging
from typing import Optional

from .events import FinalizationNotifier, get_finalization_notifier
from .store import MediationStore
from .types import MessageRecord

logger = logging.getLogger(__name__)


class SessionCompletionCoordinator:
    """
    Detects that both partners are done and emits the shared solution.

    Duplicate emission is prevented by reading the log before writing and
    by the store rejecting a second solution entry. Nothing is cached
    between calls, so a failed append is simply retried by the next call.
    """

    def __init__(
        self,
        store: MediationStore,
        notifier: Optional[FinalizationNotifier] = None,
    ):
        self.store = store
        self.notifier = notifier or get_finalization_notifier()

    async def check_and_maybe_finalize(self, session_id: str) -> Optional[MessageRecord]:
        """
        Emit the shared solution entry if both partners have summaries.

        Args:
            session_id: Session to check

        Returns:
            The session's solution entry (new or existing), or None while
            at least one partner is still talking

        Raises:
            UpstreamError: If reading or appending fails
        """
        session = await self.store.get_session(session_id)
        if session is None:
            return None

        summaries = {
            summary.partner_name: summary
            for summary in await self.store.list_summaries(session_id)
            if session.position_of(summary.partner_name) is not None
        }
        if len(summaries) < 2:
            return None

        existing = await self.store.get_solution(session_id)
        if existing is not None:
            return existing

        # The second partner's conversation doubles as the mediation
        solution_text = summaries[session.second_partner].text
        entry = await self.store.append_solution(session_id, solution_text)

        if entry is None:
            # Lost the race to a concurrent check
            return await self.store.get_solution(session_id)

        logger.info(f"Session {session_id} finalized with shared solution")
        await self.notifier.publish(session_id, entry)
        return entry
