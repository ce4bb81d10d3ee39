"""
Partner mediation core.

Two partners talk to the AI privately in one shared session log. Each
partner's thread is rebuilt from that log, summaries are detected in the
AI replies, and once both partners are summarized the second partner's
summary is posted to both as the shared solution.
"""

from .coordinator import SessionCompletionCoordinator
from .detector import MarkerSummaryDetector, SummaryClassifier, detect_summary
from .driver import ConversationDriver
from .errors import MediationError, NotFoundError, UpstreamError, ValidationError
from .events import FinalizationNotifier, LocalFinalizationNotifier
from .service import MediationService, SessionStatus, TurnOutcome
from .state import PartnerStage
from .store import InMemoryMediationStore, MediationStore, SqlAlchemyMediationStore
from .threads import StarterPolicy, split_threads, thread_for
from .types import (
    MessageRecord,
    SessionRecord,
    SummaryRecord,
    TurnResult,
    SOLUTION_AUTHOR,
    START_CONVERSATION,
)

__all__ = [
    # Types
    "MessageRecord",
    "SessionRecord",
    "SummaryRecord",
    "TurnResult",
    "SOLUTION_AUTHOR",
    "START_CONVERSATION",
    # Errors
    "MediationError",
    "ValidationError",
    "NotFoundError",
    "UpstreamError",
    # Threads
    "StarterPolicy",
    "thread_for",
    "split_threads",
    # Detection
    "SummaryClassifier",
    "MarkerSummaryDetector",
    "detect_summary",
    # Lifecycle
    "PartnerStage",
    # Storage
    "MediationStore",
    "InMemoryMediationStore",
    "SqlAlchemyMediationStore",
    # Orchestration
    "ConversationDriver",
    "SessionCompletionCoordinator",
    "FinalizationNotifier",
    "LocalFinalizationNotifier",
    "MediationService",
    "SessionStatus",
    "TurnOutcome",
]
