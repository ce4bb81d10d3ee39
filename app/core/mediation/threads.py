"""
Thread partitioning.

Rebuilds the conversation a single partner sees from the session's single
interleaved log. Both partners' turns share one log, ordered by `seq`.
"""

from enum import Enum
from typing import Iterable, Iterator

from app.config import settings
from app.models.database import MessageRole
from .types import MessageRecord, SOLUTION_AUTHOR


class StarterPolicy(str, Enum):
    """Which assistant message may open a partner's thread.

    ANY_FIRST_ASSISTANT takes the first assistant message met before anything
    else was included, whoever it was addressed to. UNLABELED_OR_OWN only
    takes it when it carries no author label or the partner's own label.
    """

    ANY_FIRST_ASSISTANT = "any_first_assistant"
    UNLABELED_OR_OWN = "unlabeled_or_own"


DEFAULT_STARTER_POLICY = StarterPolicy(settings.starter_policy)


def _is_starter(
    entry: MessageRecord,
    partner_name: str,
    policy: StarterPolicy,
) -> bool:
    if policy is StarterPolicy.UNLABELED_OR_OWN:
        return entry.author is None or entry.author == partner_name
    return True


def thread_for(
    log: Iterable[MessageRecord],
    partner_name: str,
    starter_policy: StarterPolicy = DEFAULT_STARTER_POLICY,
) -> Iterator[MessageRecord]:
    """
    Yield the entries of `log` visible to `partner_name`, in log order.

    Rules, applied per entry:
    - the partner's own user message is included and arms the reply flag
    - an assistant message while the flag is armed is the reply to it,
      whatever its author label, and disarms the flag
    - an assistant message before anything was included opens the thread
    - shared solution entries are always included
    - everything else is excluded

    Args:
        log: Session log ordered by seq
        partner_name: Partner whose thread to rebuild
        starter_policy: How to treat an assistant message met first

    Yields:
        MessageRecord entries of the partner's thread
    """
    expecting_reply = False
    included_any = False

    for entry in log:
        is_assistant = entry.role == MessageRole.ASSISTANT

        if entry.role == MessageRole.USER and entry.author == partner_name:
            include = True
            expecting_reply = True
        elif is_assistant and expecting_reply:
            include = True
            expecting_reply = False
        elif is_assistant and not included_any:
            include = _is_starter(entry, partner_name, starter_policy)
        else:
            include = False

        # Shared solution entries are visible to both partners
        if include or entry.author == SOLUTION_AUTHOR:
            included_any = True
            yield entry


def split_threads(
    log: Iterable[MessageRecord],
    partner_names: tuple[str, str],
    starter_policy: StarterPolicy = DEFAULT_STARTER_POLICY,
) -> dict[str, list[MessageRecord]]:
    """Rebuild both partners' threads from one log."""
    entries = list(log)
    return {
        name: list(thread_for(entries, name, starter_policy))
        for name in partner_names
    }
