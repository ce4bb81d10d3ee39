"""
Mediation service.

Application-facing operations: create a session, take a turn, read a
partner's thread, and poll the session status. Owns the persistence side
effects of a turn and triggers finalization.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from app.config import settings
from app.infra.claude import ClaudeClient
from app.models.database import MessageRole
from .coordinator import SessionCompletionCoordinator
from .detector import SummaryClassifier
from .driver import ConversationDriver
from .errors import NotFoundError, UpstreamError, ValidationError
from .events import FinalizationNotifier, get_finalization_notifier
from .state import PartnerStage, stage_for
from .store import MediationStore
from .threads import DEFAULT_STARTER_POLICY, StarterPolicy, split_threads, thread_for
from .types import (
    MessageRecord, SessionRecord, SummaryRecord, START_CONVERSATION,
    parse_partner_names,
)

logger = logging.getLogger(__name__)


@dataclass
class TurnOutcome:
    """What a turn produced and stored."""

    reply_text: str
    summary_text: Optional[str] = None
    summary_saved: bool = False
    messages: list[MessageRecord] = field(default_factory=list)
    solution: Optional[MessageRecord] = None


@dataclass
class SessionStatus:
    """Completion status of a session."""

    session: SessionRecord
    stages: dict[str, PartnerStage]
    summaries: dict[str, SummaryRecord]
    solution: Optional[MessageRecord] = None

    @property
    def both_done(self) -> bool:
        return self.solution is not None

    def summary_of(self, partner_name: str) -> Optional[SummaryRecord]:
        return self.summaries.get(partner_name)


def _require(value: Optional[str], field_name: str) -> str:
    """Reject missing or blank required fields."""
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field_name}")
    return value


class MediationService:
    """Entry point for the partner mediation flow."""

    def __init__(
        self,
        store: MediationStore,
        claude_client: Optional[ClaudeClient] = None,
        detector: Optional[SummaryClassifier] = None,
        notifier: Optional[FinalizationNotifier] = None,
        starter_policy: StarterPolicy = DEFAULT_STARTER_POLICY,
    ):
        self.store = store
        self.notifier = notifier or get_finalization_notifier()
        self.starter_policy = starter_policy
        self.driver = ConversationDriver(
            store,
            claude_client=claude_client,
            detector=detector,
            starter_policy=starter_policy,
        )
        self.coordinator = SessionCompletionCoordinator(store, notifier=self.notifier)

    async def create_session(self, partner_names: Optional[str]) -> SessionRecord:
        """
        Create a session from composite partner names ("Alice & Bob").

        Raises:
            ValidationError: Names missing, not two, empty or identical
        """
        names = parse_partner_names(partner_names, settings.partner_name_separator)
        session = await self.store.create_session(names)
        logger.info(f"Mediation session {session.id} created")
        return session

    async def get_session(self, session_id: str) -> SessionRecord:
        """
        Raises:
            NotFoundError: Unknown session
        """
        _require(session_id, "sessionId")
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session

    async def _get_partner_session(self, session_id: str, partner_name: str) -> SessionRecord:
        _require(partner_name, "partnerName")
        session = await self.get_session(session_id)
        if session.position_of(partner_name) is None:
            raise ValidationError(f"'{partner_name}' is not a partner in this session")
        return session

    async def take_turn(
        self,
        session_id: str,
        partner_name: str,
        message: str,
        history: Optional[Iterable[MessageRecord]] = None,
    ) -> TurnOutcome:
        """
        Run a turn and persist it.

        The user message (unless the turn is the AI opener) and the reply
        are appended together after the model answered, so a failed
        completion leaves no trace. A detected summary is stored only the
        first time for the partner, then finalization is checked.

        Args:
            session_id: Session identifier
            partner_name: Partner taking the turn
            message: Partner's text or START_CONVERSATION
            history: Optional partner thread supplied by the client

        Raises:
            ValidationError: Missing field or unknown partner
            NotFoundError: Unknown session
            UpstreamError: Completion or storage failure
        """
        _require(session_id, "sessionId")
        _require(partner_name, "partnerName")
        _require(message, "message")

        result = await self.driver.handle_turn(
            session_id,
            partner_name,
            message,
            history=history,
        )

        records = []
        if message != START_CONVERSATION:
            records.append(MessageRecord(
                session_id=session_id,
                role=MessageRole.USER,
                author=partner_name,
                text=message,
            ))
        records.append(MessageRecord(
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            author=partner_name,
            text=result.reply_text,
        ))
        stored = await self.store.append_messages(records)

        outcome = TurnOutcome(
            reply_text=result.reply_text,
            summary_text=result.summary_text,
            messages=stored,
        )

        if result.summary_text is None or message == START_CONVERSATION:
            outcome.summary_text = None
            return outcome

        if await self.store.get_summary(session_id, partner_name) is None:
            saved = await self.store.save_summary(session_id, partner_name, result.summary_text)
            outcome.summary_saved = saved is not None

        if outcome.summary_saved:
            logger.info(f"Summary stored for {partner_name} in session {session_id}")
            outcome.solution = await self._finalize_quietly(session_id)

        return outcome

    async def get_thread(self, session_id: str, partner_name: str) -> list[MessageRecord]:
        """Messages visible to one partner."""
        await self._get_partner_session(session_id, partner_name)
        log = await self.store.list_messages(session_id)
        return list(thread_for(log, partner_name, self.starter_policy))

    async def get_partner_summary(self, session_id: str, partner_name: str) -> SummaryRecord:
        """
        Raises:
            NotFoundError: Unknown session, or no summary yet for the partner
        """
        await self._get_partner_session(session_id, partner_name)
        summary = await self.store.get_summary(session_id, partner_name)
        if summary is None:
            raise NotFoundError(f"No summary yet for {partner_name}")
        return summary

    async def used_partner_names(self, session_id: str) -> set[str]:
        """Partners that already sent at least one message."""
        session = await self.get_session(session_id)
        log = await self.store.list_messages(session_id)
        return {
            entry.author
            for entry in log
            if entry.role == MessageRole.USER and session.position_of(entry.author or "") is not None
        }

    async def _finalize_quietly(self, session_id: str) -> Optional[MessageRecord]:
        # A failed check is retried by the next status poll
        try:
            return await self.coordinator.check_and_maybe_finalize(session_id)
        except UpstreamError as e:
            logger.warning(f"Finalization check failed for {session_id}: {e}")
            return None

    async def get_status(self, session_id: str, wait: float = 0.0) -> SessionStatus:
        """
        Check completion, finalizing the session when both partners are done.

        Args:
            session_id: Session identifier
            wait: Seconds to wait for finalization before answering

        Raises:
            NotFoundError: Unknown session
        """
        session = await self.get_session(session_id)

        solution = await self._finalize_quietly(session_id)

        wait = min(max(wait, 0.0), settings.status_max_wait_seconds)
        if solution is None and wait > 0:
            await self.store.release()
            await self.notifier.wait(session_id, wait)
            solution = await self._finalize_quietly(session_id)

        summaries = {
            summary.partner_name: summary
            for summary in await self.store.list_summaries(session_id)
            if session.position_of(summary.partner_name) is not None
        }
        threads = split_threads(
            await self.store.list_messages(session_id),
            session.partner_names,
            self.starter_policy,
        )
        stages = {
            name: stage_for(name, threads[name], summaries, solution is not None)
            for name in session.partner_names
        }

        return SessionStatus(
            session=session,
            stages=stages,
            summaries=summaries,
            solution=solution,
        )
