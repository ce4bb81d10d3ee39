"""
Conversation driver.

Runs one turn of a partner's private conversation: picks the prompt for
the partner's position, replays the partner's thread to the model, and
checks the reply for a perspective summary. Persisting the turn is left
to the caller.
"""

import logging
from typing import Iterable, Optional

from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client
from app.models.database import MessageRole
from .detector import SummaryClassifier, get_summary_detector
from .errors import NotFoundError, UpstreamError, ValidationError
from .prompts import OPENER_REQUEST, build_system_prompt
from .store import MediationStore
from .threads import DEFAULT_STARTER_POLICY, StarterPolicy, thread_for
from .types import MessageRecord, START_CONVERSATION, TurnResult

logger = logging.getLogger(__name__)


def build_claude_messages(
    history: Iterable[MessageRecord],
    user_text: str,
) -> list[dict]:
    """
    Build the Messages API conversation for a turn.

    The start sentinel is replaced by the synthetic opener request. The API
    wants a user turn first and alternating roles, so a thread that opens
    with an assistant message gets the opener request in front of it and
    consecutive same-role turns are merged.

    Args:
        history: Partner thread, oldest first
        user_text: New user message or START_CONVERSATION

    Returns:
        Messages in Anthropic format
    """
    turns = [entry.to_claude_message() for entry in history]
    new_text = OPENER_REQUEST if user_text == START_CONVERSATION else user_text
    turns.append({"role": MessageRole.USER.value, "content": new_text})

    if turns[0]["role"] != MessageRole.USER.value:
        turns.insert(0, {"role": MessageRole.USER.value, "content": OPENER_REQUEST})

    messages: list[dict] = []
    for turn in turns:
        if messages and messages[-1]["role"] == turn["role"]:
            messages[-1] = {
                "role": turn["role"],
                "content": f"{messages[-1]['content']}\n\n{turn['content']}",
            }
        else:
            messages.append(dict(turn))
    return messages


class ConversationDriver:
    """Orchestrates a single partner turn against the completion model."""

    def __init__(
        self,
        store: MediationStore,
        claude_client: Optional[ClaudeClient] = None,
        detector: Optional[SummaryClassifier] = None,
        starter_policy: StarterPolicy = DEFAULT_STARTER_POLICY,
    ):
        """
        Args:
            store: Session, message and summary storage
            claude_client: Claude client (for testing; singleton otherwise)
            detector: Summary classifier (marker detector by default)
            starter_policy: Thread starter rule for history replay
        """
        self.store = store
        self._client = claude_client
        self.detector = detector or get_summary_detector()
        self.starter_policy = starter_policy

    async def _get_client(self) -> ClaudeClient:
        """Get or create Claude client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def build_prompt(
        self,
        session_id: str,
        partner_name: str,
        user_text: str,
    ) -> str:
        """
        Resolve the partner's position and build its system prompt.

        Raises:
            NotFoundError: Unknown session
            ValidationError: Partner is not part of the session
        """
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")

        position = session.position_of(partner_name)
        if position is None:
            raise ValidationError(f"'{partner_name}' is not a partner in this session")

        other = session.other_partner(partner_name)
        is_first = position == 0

        other_summary = None
        if not is_first and user_text == START_CONVERSATION:
            # Looked up once, when the second partner's conversation opens
            summary = await self.store.get_summary(session_id, other)
            if summary is not None:
                other_summary = summary.text

        return build_system_prompt(
            partner=partner_name,
            other=other,
            is_first_partner=is_first,
            other_summary=other_summary,
        )

    async def handle_turn(
        self,
        session_id: str,
        partner_name: str,
        user_text: str,
        history: Optional[Iterable[MessageRecord]] = None,
    ) -> TurnResult:
        """
        Run one turn of a partner's conversation.

        Args:
            session_id: Session identifier
            partner_name: Partner taking the turn
            user_text: Partner's message, or START_CONVERSATION
            history: Partner's thread; rebuilt from the session log when omitted

        Returns:
            TurnResult with the reply and the detected summary, if any.
            Opening turns never carry a summary.

        Raises:
            NotFoundError: Unknown session
            ValidationError: Partner is not part of the session
            UpstreamError: Completion call failed
        """
        system_prompt = await self.build_prompt(session_id, partner_name, user_text)

        if user_text == START_CONVERSATION:
            # An opening turn starts from a clean slate
            thread = []
        else:
            if history is None:
                history = await self.store.list_messages(session_id)
            thread = thread_for(history, partner_name, self.starter_policy)

        messages = build_claude_messages(thread, user_text)

        # Nothing is held open while the model answers
        await self.store.release()

        try:
            client = await self._get_client()
            response = await client.complete(
                messages=messages,
                system_prompt=system_prompt,
            )
        except ClaudeClientError as e:
            logger.error(f"Completion failed for {partner_name} in {session_id}: {e}")
            raise UpstreamError("Failed to generate a reply") from e

        reply_text = response.content
        if not reply_text.strip():
            raise UpstreamError("Model returned an empty reply")

        # The second partner's opener quotes the first partner's summary
        if user_text == START_CONVERSATION:
            return TurnResult(reply_text=reply_text)

        summary_text = self.detector.detect(reply_text)
        if summary_text is not None:
            logger.info(f"Summary detected for {partner_name} in session {session_id}")

        return TurnResult(reply_text=reply_text, summary_text=summary_text)
