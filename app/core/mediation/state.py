"""Partner conversation lifecycle."""

from enum import Enum
from typing import Iterable

from .types import MessageRecord


class PartnerStage(str, Enum):
    """Where a partner is in their private conversation."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUMMARIZED = "summarized"

    # Session-level terminal state: both partners summarized
    BOTH_DONE = "both_done"


def stage_for(
    partner_name: str,
    thread: Iterable[MessageRecord],
    summarized_partners: Iterable[str],
    solution_present: bool = False,
) -> PartnerStage:
    """
    Derive a partner's stage from stored facts.

    Args:
        partner_name: Partner to evaluate
        thread: Partner's thread
        summarized_partners: Names of partners that have a summary
        solution_present: Whether the shared solution entry exists

    Returns:
        Current PartnerStage
    """
    summarized = set(summarized_partners)

    if partner_name in summarized:
        if solution_present or len(summarized) >= 2:
            return PartnerStage.BOTH_DONE
        return PartnerStage.SUMMARIZED

    # Starters borrowed from the other partner do not count
    started = any(entry.author == partner_name for entry in thread)
    return PartnerStage.IN_PROGRESS if started else PartnerStage.NOT_STARTED
