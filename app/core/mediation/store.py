"""
Mediation storage.

The store is the message log of each session plus the per-partner summary
table. The mediation core only talks to the MediationStore interface.
The API runs on SqlAlchemyMediationStore; InMemoryMediationStore is a
process-local implementation for tests.
"""

import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import (
    ChatMessage, ChatSession, MessageRole, PartnerSummary, SessionType,
)
from .errors import UpstreamError
from .types import (
    MessageRecord, SessionRecord, SummaryRecord, SOLUTION_AUTHOR,
    join_partner_names, parse_partner_names,
)

logger = logging.getLogger(__name__)


class MediationStore(ABC):
    """Storage used by the mediation core."""

    @abstractmethod
    async def create_session(self, partner_names: tuple[str, str]) -> SessionRecord:
        """Create a THERAPY session for the partner pair."""
        pass

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        """Get a THERAPY session, None if unknown."""
        pass

    @abstractmethod
    async def append_messages(self, records: list[MessageRecord]) -> list[MessageRecord]:
        """Append entries to the log atomically, assigning their seq."""
        pass

    @abstractmethod
    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        """Full session log ordered by seq."""
        pass

    @abstractmethod
    async def get_solution(self, session_id: str) -> Optional[MessageRecord]:
        """The shared solution entry, None if not emitted yet."""
        pass

    @abstractmethod
    async def append_solution(self, session_id: str, text: str) -> Optional[MessageRecord]:
        """
        Append the shared solution entry.

        Returns None when the session already has one.
        """
        pass

    @abstractmethod
    async def save_summary(
        self,
        session_id: str,
        partner_name: str,
        text: str,
    ) -> Optional[SummaryRecord]:
        """
        Store a partner's summary.

        Returns None when the partner already has one.
        """
        pass

    @abstractmethod
    async def get_summary(self, session_id: str, partner_name: str) -> Optional[SummaryRecord]:
        """A partner's summary, None if absent."""
        pass

    @abstractmethod
    async def list_summaries(self, session_id: str) -> list[SummaryRecord]:
        """All summaries of a session, oldest first."""
        pass

    async def append_message(self, record: MessageRecord) -> MessageRecord:
        """Append a single entry to the log."""
        stored = await self.append_messages([record])
        return stored[0]

    async def release(self) -> None:
        """
        End the current unit of work before a long wait.

        Called ahead of the completion call and of status long-polls so no
        connection is held while nothing is read or written.
        """
        pass


class InMemoryMediationStore(MediationStore):
    """
    Process-local store.

    Every method runs without awaiting, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self._sessions: dict[str, SessionRecord] = {}
        self._messages: dict[str, list[MessageRecord]] = {}
        self._summaries: dict[str, dict[str, SummaryRecord]] = {}
        self._seq = itertools.count(1)

    async def create_session(self, partner_names: tuple[str, str]) -> SessionRecord:
        session = SessionRecord(id=str(uuid.uuid4()), partner_names=tuple(partner_names))
        self._sessions[session.id] = session
        self._messages[session.id] = []
        self._summaries[session.id] = {}
        return session

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    async def append_messages(self, records: list[MessageRecord]) -> list[MessageRecord]:
        for record in records:
            if record.session_id not in self._sessions:
                raise UpstreamError(f"Unknown session {record.session_id}")

        for record in records:
            record.seq = next(self._seq)
            self._messages[record.session_id].append(record)
        return records

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        return list(self._messages.get(session_id, []))

    async def get_solution(self, session_id: str) -> Optional[MessageRecord]:
        for record in self._messages.get(session_id, []):
            if record.is_solution:
                return record
        return None

    async def append_solution(self, session_id: str, text: str) -> Optional[MessageRecord]:
        if await self.get_solution(session_id) is not None:
            return None
        return await self.append_message(MessageRecord(
            session_id=session_id,
            role=MessageRole.ASSISTANT,
            author=SOLUTION_AUTHOR,
            text=text,
        ))

    async def save_summary(
        self,
        session_id: str,
        partner_name: str,
        text: str,
    ) -> Optional[SummaryRecord]:
        if session_id not in self._sessions:
            raise UpstreamError(f"Unknown session {session_id}")

        summaries = self._summaries[session_id]
        if partner_name in summaries:
            return None

        summary = SummaryRecord(session_id=session_id, partner_name=partner_name, text=text)
        summaries[partner_name] = summary
        return summary

    async def get_summary(self, session_id: str, partner_name: str) -> Optional[SummaryRecord]:
        return self._summaries.get(session_id, {}).get(partner_name)

    async def list_summaries(self, session_id: str) -> list[SummaryRecord]:
        return list(self._summaries.get(session_id, {}).values())


def _to_uuid(value: str) -> Optional[uuid.UUID]:
    """Parse a session id, None if it is not a UUID."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _session_record(row: ChatSession) -> SessionRecord:
    return SessionRecord(
        id=str(row.id),
        partner_names=parse_partner_names(row.partner_names),
        session_type=row.session_type,
        created_at=row.created_at,
    )


def _message_record(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        session_id=str(row.session_id),
        role=row.role,
        text=row.message,
        author=row.name,
        seq=row.seq,
        created_at=row.created_at,
        metadata=row.metadata_ or {},
    )


def _summary_record(row: PartnerSummary) -> SummaryRecord:
    return SummaryRecord(
        session_id=str(row.session_id),
        partner_name=row.partner_name,
        text=row.summary_text,
        created_at=row.created_at,
    )


class SqlAlchemyMediationStore(MediationStore):
    """
    PostgreSQL store on an async SQLAlchemy session.

    The caller owns the transaction (see app.infra.database.get_db);
    release() commits early so long waits hold no connection.
    Uniqueness of summaries and of the solution entry is backed by database
    constraints; conflicting inserts run in a savepoint and report None.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def release(self) -> None:
        """Commit what was done so far and return the connection to the pool."""
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to end transaction: {e}")
            raise UpstreamError("Failed to end transaction") from e

    async def create_session(self, partner_names: tuple[str, str]) -> SessionRecord:
        row = ChatSession(
            session_type=SessionType.THERAPY,
            partner_names=join_partner_names(partner_names),
            user_id=None,  # Anonymous sessions
        )
        try:
            self.db.add(row)
            await self.db.flush()
            await self.db.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create session: {e}")
            raise UpstreamError("Failed to create session") from e

        logger.info(f"Session created: {row.id}")
        return _session_record(row)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        key = _to_uuid(session_id)
        if key is None:
            return None

        try:
            result = await self.db.execute(
                select(ChatSession).where(
                    ChatSession.id == key,
                    ChatSession.session_type == SessionType.THERAPY,
                )
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch session {session_id}: {e}")
            raise UpstreamError("Failed to fetch session") from e

        return _session_record(row) if row else None

    async def append_messages(self, records: list[MessageRecord]) -> list[MessageRecord]:
        rows = [
            ChatMessage(
                session_id=_to_uuid(record.session_id),
                role=record.role,
                name=record.author,
                message=record.text,
                metadata_=record.metadata or None,
            )
            for record in records
        ]
        try:
            self.db.add_all(rows)
            await self.db.flush()
            for row in rows:
                await self.db.refresh(row)
        except SQLAlchemyError as e:
            logger.error(f"Failed to save messages: {e}")
            raise UpstreamError("Failed to save messages") from e

        return [_message_record(row) for row in rows]

    async def list_messages(self, session_id: str) -> list[MessageRecord]:
        key = _to_uuid(session_id)
        if key is None:
            return []

        try:
            result = await self.db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == key)
                .order_by(ChatMessage.seq)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch messages for {session_id}: {e}")
            raise UpstreamError("Failed to fetch messages") from e

        return [_message_record(row) for row in result.scalars().all()]

    async def get_solution(self, session_id: str) -> Optional[MessageRecord]:
        key = _to_uuid(session_id)
        if key is None:
            return None

        try:
            result = await self.db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == key, ChatMessage.name == SOLUTION_AUTHOR)
                .order_by(ChatMessage.seq)
                .limit(1)
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch solution for {session_id}: {e}")
            raise UpstreamError("Failed to fetch solution") from e

        return _message_record(row) if row else None

    async def append_solution(self, session_id: str, text: str) -> Optional[MessageRecord]:
        row = ChatMessage(
            session_id=_to_uuid(session_id),
            role=MessageRole.ASSISTANT,
            name=SOLUTION_AUTHOR,
            message=text,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
        except IntegrityError:
            logger.info(f"Solution already emitted for session {session_id}")
            return None
        except SQLAlchemyError as e:
            logger.error(f"Failed to save solution for {session_id}: {e}")
            raise UpstreamError("Failed to save solution") from e

        await self.db.refresh(row)
        return _message_record(row)

    async def save_summary(
        self,
        session_id: str,
        partner_name: str,
        text: str,
    ) -> Optional[SummaryRecord]:
        row = PartnerSummary(
            session_id=_to_uuid(session_id),
            partner_name=partner_name,
            summary_text=text,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
        except IntegrityError:
            logger.info(f"Summary already stored for {partner_name} in {session_id}")
            return None
        except SQLAlchemyError as e:
            logger.error(f"Failed to save summary for {session_id}: {e}")
            raise UpstreamError("Failed to save summary") from e

        await self.db.refresh(row)
        return _summary_record(row)

    async def get_summary(self, session_id: str, partner_name: str) -> Optional[SummaryRecord]:
        key = _to_uuid(session_id)
        if key is None:
            return None

        try:
            result = await self.db.execute(
                select(PartnerSummary).where(
                    PartnerSummary.session_id == key,
                    PartnerSummary.partner_name == partner_name,
                )
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch summary for {session_id}: {e}")
            raise UpstreamError("Failed to fetch summary") from e

        return _summary_record(row) if row else None

    async def list_summaries(self, session_id: str) -> list[SummaryRecord]:
        key = _to_uuid(session_id)
        if key is None:
            return []

        try:
            result = await self.db.execute(
                select(PartnerSummary)
                .where(PartnerSummary.session_id == key)
                .order_by(PartnerSummary.created_at)
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch summaries for {session_id}: {e}")
            raise UpstreamError("Failed to fetch summaries") from e

        return [_summary_record(row) for row in result.scalars().all()]
