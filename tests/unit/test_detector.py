"""Tests for summary detection."""

import pytest

from app.core.mediation.detector import MarkerSummaryDetector, detect_summary
from app.core.mediation.prompts import FIRST_PARTNER_PROMPT, SECOND_PARTNER_PROMPT


class TestMarkerSummaryDetector:
    """Test marker-based summary detection."""

    @pytest.fixture
    def detector(self):
        """Detector with the configured markers."""
        return MarkerSummaryDetector()

    def test_first_partner_summary(self, detector):
        """Test the first partner's summary opener is detected."""
        reply = (
            "Here's what I have understood so far from your perspective: "
            "you feel unheard when plans change last minute."
        )

        assert detector.detect(reply) == reply

    def test_second_partner_summary(self, detector):
        """Test the second partner's summary opener is detected."""
        reply = (
            "Here's what I've understood about your side of the story: "
            "work has been draining you.\n\nWhat feels like the next step now?"
        )

        assert detector.detect(reply) == reply

    def test_marker_mid_reply(self, detector):
        """Test a marker anywhere in the reply counts."""
        reply = "Okay. So, what I've understood about your perspective so far is this."

        assert detector.detect(reply) == reply

    def test_case_insensitive(self, detector):
        """Test matching ignores case."""
        reply = "HERE'S WHAT I HAVE UNDERSTOOD SO FAR FROM YOUR PERSPECTIVE"

        assert detector.detect(reply) == reply

    def test_curly_apostrophe(self, detector):
        """Test typographic apostrophes match the ASCII markers."""
        reply = "Here’s what I’ve understood about your side of the story: ..."

        assert detector.detect(reply) == reply

    def test_ordinary_reply(self, detector):
        """Test a normal question is not a summary."""
        assert detector.detect("What happened after that?") is None

    def test_empty_reply(self, detector):
        """Test an empty reply is not a summary."""
        assert detector.detect("") is None
        assert detector.matching_marker("") is None

    def test_custom_markers(self):
        """Test detection with injected markers."""
        detector = MarkerSummaryDetector(markers=["In short:"])

        assert detector.detect("In short: you both care.") == "In short: you both care."
        assert detector.detect(
            "Here's what I have understood so far from your perspective"
        ) is None

    def test_matching_marker(self, detector):
        """Test the matched marker is reported."""
        marker = detector.matching_marker(
            "here's what i've understood about their perspective so far..."
        )

        assert marker == "Here's what I've understood about their perspective so far"

    def test_module_helper(self):
        """Test the default detector helper."""
        reply = "Here's what I have understood so far from your perspective."

        assert detect_summary(reply) == reply
        assert detect_summary("Tell me more") is None


class TestPromptContract:
    """Test the prompts ask for phrases the detector knows."""

    def test_first_partner_prompt_has_marker(self):
        """Test the first partner prompt contains a summary marker."""
        assert MarkerSummaryDetector().matching_marker(FIRST_PARTNER_PROMPT) is not None

    def test_second_partner_prompt_has_marker(self):
        """Test the second partner prompt contains a summary marker."""
        assert MarkerSummaryDetector().matching_marker(SECOND_PARTNER_PROMPT) is not None
