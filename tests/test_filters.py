"""Tests for transcript filtering rules"""

from collections import deque

import pytest

from callrelay.relay.filters import FilterVerdict, TranscriptFilter


@pytest.fixture
def transcript_filter():
    return TranscriptFilter(min_length=3, duplicate_window=30.0)


def test_accepts_regular_sentence(transcript_filter):
    verdict = transcript_filter.evaluate("I need help with my order", [], now=0.0)

    assert verdict is FilterVerdict.ACCEPTED


@pytest.mark.parametrize("text", ["ab", "  ab  ", "", "ok"])
def test_rejects_short_text(transcript_filter, text):
    assert transcript_filter.evaluate(text, [], now=0.0) is FilterVerdict.TOO_SHORT


@pytest.mark.parametrize("text", ["Okay.", "thank you!", "OK.", "Hmm!", "hello?", "Goodbye", "yeah,", "hmm..."])
def test_rejects_filler(transcript_filter, text):
    assert transcript_filter.evaluate(text, [], now=0.0) is FilterVerdict.FILLER


def test_filler_must_be_whole_utterance(transcript_filter):
    verdict = transcript_filter.evaluate("okay let me check that", [], now=0.0)

    assert verdict is FilterVerdict.ACCEPTED


def test_duplicate_within_window(transcript_filter):
    history = deque([("i need help with my order", 100.0)])

    verdict = transcript_filter.evaluate("  I need help with my order ", history, now=129.9)

    assert verdict is FilterVerdict.DUPLICATE


def test_repeat_after_window_is_accepted(transcript_filter):
    history = deque([("i need help with my order", 100.0)])

    verdict = transcript_filter.evaluate("I need help with my order", history, now=131.0)

    assert verdict is FilterVerdict.ACCEPTED


def test_remember_normalizes(transcript_filter):
    history = deque(maxlen=10)

    TranscriptFilter.remember(history, "  Where Is My Package ", 5.0)

    assert list(history) == [("where is my package", 5.0)]
