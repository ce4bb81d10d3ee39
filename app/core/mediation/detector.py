"""
Summary detection.

Decides whether an AI reply is a perspective summary. The prompts ask the
model to open its summary with a fixed phrase, so the default detector
looks for those phrases. Paraphrased markers are missed and ordinary text
containing a marker is a false positive.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from app.config import settings

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    """Lowercase and fold typographic apostrophes to ASCII."""
    return text.replace("’", "'").replace("‘", "'").lower()


class SummaryClassifier(ABC):
    """Classifies a generated reply as a perspective summary or not."""

    @abstractmethod
    def detect(self, reply_text: str) -> Optional[str]:
        """
        Return the summary text if `reply_text` is a summary, else None.

        Args:
            reply_text: Full AI reply
        """
        pass


class MarkerSummaryDetector(SummaryClassifier):
    """
    Case-insensitive marker matching.

    When any marker occurs in the reply, the whole reply is the summary.
    """

    def __init__(self, markers: Optional[Iterable[str]] = None):
        """
        Args:
            markers: Marker phrases (defaults to settings.summary_markers)
        """
        self.markers: tuple[str, ...] = tuple(
            settings.summary_markers if markers is None else markers
        )
        self._normalized = tuple(_normalize(marker) for marker in self.markers)

    def matching_marker(self, reply_text: str) -> Optional[str]:
        """First marker found in `reply_text`, if any."""
        if not reply_text:
            return None

        haystack = _normalize(reply_text)
        for marker, needle in zip(self.markers, self._normalized):
            if needle and needle in haystack:
                return marker
        return None

    def detect(self, reply_text: str) -> Optional[str]:
        marker = self.matching_marker(reply_text)
        if marker is None:
            return None

        logger.debug(f"Summary marker matched: {marker!r}")
        return reply_text


_default_detector: Optional[MarkerSummaryDetector] = None


def get_summary_detector() -> SummaryClassifier:
    """Get the default marker detector singleton."""
    global _default_detector
    if _default_detector is None:
        _default_detector = MarkerSummaryDetector()
    return _default_detector


def detect_summary(reply_text: str) -> Optional[str]:
    """Detect a summary with the default detector."""
    return get_summary_detector().detect(reply_text)
