"""
Mediation domain records.

Plain dataclasses decoupled from the ORM so that thread partitioning,
summary detection and finalization can run on any store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.config import settings
from app.models.database import MessageRole, SessionType
from .errors import ValidationError


# Reserved author label of the shared solution entry
SOLUTION_AUTHOR = settings.solution_author_label

# Reserved message value asking the AI to open the conversation
START_CONVERSATION = settings.start_conversation_token


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_partner_names(
    composite: Optional[str],
    separator: str = settings.partner_name_separator,
) -> tuple[str, str]:
    """
    Split a composite partner string into the ordered partner pair.

    Args:
        composite: Names joined by the separator, e.g. "Alice & Bob"
        separator: Name separator

    Returns:
        (first_partner, second_partner)

    Raises:
        ValidationError: Unless there are exactly two distinct non-empty names
    """
    if not composite or not composite.strip():
        raise ValidationError("Partner names are required")

    names = [name.strip() for name in composite.split(separator)]

    if len(names) != 2:
        raise ValidationError(
            f"Expected exactly two partner names separated by '{separator.strip()}'"
        )
    if not all(names):
        raise ValidationError("Partner names must not be empty")
    if names[0] == names[1]:
        raise ValidationError("Partner names must be distinct")

    return names[0], names[1]


def join_partner_names(
    partner_names: tuple[str, str],
    separator: str = settings.partner_name_separator,
) -> str:
    """Stored composite form of a partner pair ("Alice & Bob")."""
    return separator.join(partner_names)


@dataclass
class SessionRecord:
    """A mediation session pairing two partners."""

    id: str
    partner_names: tuple[str, str]
    session_type: SessionType = SessionType.THERAPY
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def first_partner(self) -> str:
        return self.partner_names[0]

    @property
    def second_partner(self) -> str:
        return self.partner_names[1]

    @property
    def composite_names(self) -> str:
        """Names in stored form ("Alice & Bob")."""
        return join_partner_names(self.partner_names)

    def position_of(self, partner_name: str) -> Optional[int]:
        """0 for the first partner, 1 for the second, None for strangers."""
        try:
            return self.partner_names.index(partner_name)
        except ValueError:
            return None

    def other_partner(self, partner_name: str) -> Optional[str]:
        """Name of the partner that is not `partner_name`."""
        position = self.position_of(partner_name)
        if position is None:
            return None
        return self.partner_names[1 - position]


@dataclass
class MessageRecord:
    """One entry of a session's interleaved message log."""

    session_id: str
    role: MessageRole
    text: str
    author: Optional[str] = None
    seq: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    metadata: dict = field(default_factory=dict)

    @property
    def is_solution(self) -> bool:
        return self.author == SOLUTION_AUTHOR

    def to_claude_message(self) -> dict:
        """Convert to Anthropic messages format."""
        return {"role": self.role.value, "content": self.text}


@dataclass
class SummaryRecord:
    """A partner's detected perspective summary."""

    session_id: str
    partner_name: str
    text: str
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class TurnResult:
    """Output of one conversation turn."""

    reply_text: str
    summary_text: Optional[str] = None

    @property
    def has_summary(self) -> bool:
        return self.summary_text is not None
