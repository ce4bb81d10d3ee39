"""Tests for partner stages."""

from app.core.mediation.state import PartnerStage, stage_for
from app.core.mediation.types import MessageRecord, SOLUTION_AUTHOR
from app.models.database import MessageRole


def _user(author: str) -> MessageRecord:
    return MessageRecord(session_id="s", role=MessageRole.USER, author=author, text="hi")


def _solution() -> MessageRecord:
    return MessageRecord(
        session_id="s",
        role=MessageRole.ASSISTANT,
        author=SOLUTION_AUTHOR,
        text="shared",
    )


class TestStageFor:
    """Test deriving a partner's stage."""

    def test_not_started(self):
        """Test an empty thread."""
        assert stage_for("Alice", [], []) == PartnerStage.NOT_STARTED

    def test_solution_alone_is_not_a_start(self):
        """Test the shared solution does not count as chatting."""
        assert stage_for("Alice", [_solution()], []) == PartnerStage.NOT_STARTED

    def test_borrowed_starter_is_not_a_start(self):
        """Test a reply labelled for the other partner does not count."""
        starter = MessageRecord(
            session_id="s",
            role=MessageRole.ASSISTANT,
            author="Bob",
            text="Go on.",
        )

        assert stage_for("Alice", [starter], []) == PartnerStage.NOT_STARTED

    def test_in_progress(self):
        """Test a partner with messages and no summary."""
        assert stage_for("Alice", [_user("Alice")], ["Bob"]) == PartnerStage.IN_PROGRESS

    def test_summarized(self):
        """Test a partner with a summary while the other is still talking."""
        assert stage_for("Alice", [_user("Alice")], ["Alice"]) == PartnerStage.SUMMARIZED

    def test_both_done(self):
        """Test both partners summarized."""
        stage = stage_for("Alice", [_user("Alice")], ["Alice", "Bob"])

        assert stage == PartnerStage.BOTH_DONE

    def test_both_done_from_solution(self):
        """Test the solution entry marks a summarized partner done."""
        stage = stage_for("Alice", [_user("Alice")], ["Alice"], solution_present=True)

        assert stage == PartnerStage.BOTH_DONE
