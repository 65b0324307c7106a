"""Transcript quality and duplicate filtering"""

import re
from enum import Enum
from typing import Deque, Iterable, Tuple

# Greeting and acknowledgement tokens that carry no content on their own
FILLER_TOKENS = (
    "ok",
    "okay",
    "thanks",
    "thank you",
    "hello",
    "hi",
    "hey",
    "bye",
    "goodbye",
    "yes",
    "yeah",
    "no",
    "um",
    "uh",
    "ah",
    "oh",
    "hmm",
    "mm",
)

FILLER_PATTERN = re.compile(
    r"^(?:%s)[\s.,!?]*$" % "|".join(re.escape(token) for token in FILLER_TOKENS),
    re.IGNORECASE,
)


class FilterVerdict(str, Enum):
    """Outcome of evaluating one candidate transcript"""
    ACCEPTED = "accepted"
    TOO_SHORT = "too_short"
    FILLER = "filler"
    DUPLICATE = "duplicate"


def normalize(text: str) -> str:
    return text.strip().lower()


class TranscriptFilter:
    """Decide whether a final transcript is worth persisting"""

    def __init__(
        self,
        min_length: int = 3,
        duplicate_window: float = 30.0,
    ):
        self.min_length = min_length
        self.duplicate_window = duplicate_window

    def evaluate(
        self,
        text: str,
        history: Iterable[Tuple[str, float]],
        now: float,
    ) -> FilterVerdict:
        """
        Apply the rules in order and stop at the first match.

        `history` holds (normalized text, timestamp) pairs of transcripts
        already accepted for the same call and role.
        """
        candidate = text.strip()

        if len(candidate) < self.min_length:
            return FilterVerdict.TOO_SHORT

        if FILLER_PATTERN.match(candidate):
            return FilterVerdict.FILLER

        normalized = candidate.lower()
        for seen_text, seen_at in history:
            if seen_text == normalized and now - seen_at < self.duplicate_window:
                return FilterVerdict.DUPLICATE

        return FilterVerdict.ACCEPTED

    @staticmethod
    def remember(history: Deque[Tuple[str, float]], text: str, now: float) -> None:
        history.append((normalize(text), now))
