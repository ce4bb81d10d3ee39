"""
Database Models

SQLAlchemy ORM models for partner mediation sessions, their shared
message log, and per-partner perspective summaries.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    BigInteger, DateTime, ForeignKey, Index, String, Text,
    UniqueConstraint, Enum as SQLEnum, text
)
from sqlalchemy.dialects.postgresql import UUID, JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class CreatedAtMixin:
    """Mixin that adds a created_at timestamp column.

    Rows in this schema are never updated, so there is no updated_at.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class SessionType(str, Enum):
    """Chat session flow discriminator."""
    PILOT = "PILOT"
    THERAPY = "THERAPY"


class MessageRole(str, Enum):
    """Message author role."""
    USER = "user"
    ASSISTANT = "assistant"


class ChatSession(Base, CreatedAtMixin):
    """
    Chat session model.

    A THERAPY session pairs exactly two partners; their names are stored
    as one composite string ("Alice & Bob"). PILOT sessions belong to an
    unrelated flow and are ignored by mediation.
    """

    __tablename__ = "chat_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        nullable=True
    )
    session_type: Mapped[SessionType] = mapped_column(
        SQLEnum(SessionType, name="session_type"),
        default=SessionType.PILOT,
        nullable=False
    )
    partner_names: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    messages: Mapped[List["ChatMessage"]] = relationship(
        "ChatMessage",
        back_populates="session",
        order_by="ChatMessage.seq",
    )
    summaries: Mapped[List["PartnerSummary"]] = relationship(
        "PartnerSummary",
        back_populates="session"
    )

    def __repr__(self) -> str:
        return (
            f"<ChatSession(id={self.id}, type={self.session_type.value}, "
            f"partners='{self.partner_names}')>"
        )


class ChatMessage(Base, CreatedAtMixin):
    """
    Chat message model.

    One entry in a session's single interleaved log. `seq` is assigned at
    insert time and is the total order used to rebuild partner threads;
    created_at is informational only.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("idx_chat_messages_session_seq", "session_id", "seq"),
        Index("idx_chat_messages_name", "name"),
        # At most one shared solution entry per session
        Index(
            "uq_chat_messages_solution",
            "session_id",
            unique=True,
            postgresql_where=text("name = 'SOLUTION'"),
        ),
    )

    seq: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False
    )
    role: Mapped[MessageRole] = mapped_column(
        SQLEnum(MessageRole, name="message_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSON,
        nullable=True
    )

    # Relationships
    session: Mapped["ChatSession"] = relationship(
        "ChatSession",
        back_populates="messages"
    )

    def __repr__(self) -> str:
        return (
            f"<ChatMessage(seq={self.seq}, session_id={self.session_id}, "
            f"role={self.role.value}, name='{self.name}')>"
        )


class PartnerSummary(Base, CreatedAtMixin):
    """
    Partner summary model.

    The detected perspective summary of one partner. At most one per
    (session, partner).
    """

    __tablename__ = "summaries"
    __table_args__ = (
        UniqueConstraint("session_id", "partner_name", name="uq_summaries_session_partner"),
        Index("idx_summaries_session_id", "session_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("chat_sessions.id", ondelete="CASCADE"),
        nullable=False
    )
    partner_name: Mapped[str] = mapped_column(String(255), nullable=False)
    summary_text: Mapped[str] = mapped_column(Text, nullable=False)

    # Relationships
    session: Mapped["ChatSession"] = relationship(
        "ChatSession",
        back_populates="summaries"
    )

    def __repr__(self) -> str:
        return (
            f"<PartnerSummary(session_id={self.session_id}, "
            f"partner='{self.partner_name}')>"
        )
