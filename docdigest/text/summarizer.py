"""Extractive summarizer: stopword-filtered sentence scoring with a lead bonus."""

import logging
from enum import Enum

from pydantic import BaseModel

from docdigest.text.stopwords import STOPWORDS

logger = logging.getLogger(__name__)

SENTENCE_DELIMITER = ". "
LEAD_SENTENCES = 5  # sentences at index < 5 get the position bonus
LEAD_WEIGHT = 1.5

SHORT_THRESHOLD = 1000  # chars
MEDIUM_THRESHOLD = 5000  # chars


# ── Models ───────────────────────────────────────────────────────────


class SummaryLength(str, Enum):
    """Target summary size, derived from document length."""

    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"

    @property
    def sentence_count(self) -> int:
        return _SENTENCE_COUNTS[self]


_SENTENCE_COUNTS = {
    SummaryLength.SHORT: 3,
    SummaryLength.MEDIUM: 5,
    SummaryLength.LONG: 10,
}


class ScoredSentence(BaseModel):
    """A candidate sentence and its weighted significance score."""

    text: str
    score: float


# ── Public API ───────────────────────────────────────────────────────


def summary_length_for(
    text: str,
    short_threshold: int = SHORT_THRESHOLD,
    medium_threshold: int = MEDIUM_THRESHOLD,
) -> SummaryLength:
    """Pick a summary length from the character count of *text*."""
    n = len(text)
    if n < short_threshold:
        return SummaryLength.SHORT
    if n < medium_threshold:
        return SummaryLength.MEDIUM
    return SummaryLength.LONG


def score_sentences(text: str) -> list[ScoredSentence]:
    """Score every ". "-delimited sentence, highest first.

    Identical sentences collapse into one entry: the later score wins but the
    entry keeps the position of its first occurrence. Ties keep that order.
    """
    scores: dict[str, float] = {}
    for index, sentence in enumerate(text.split(SENTENCE_DELIMITER)):
        raw = sum(1 for word in sentence.split(" ") if word.lower() not in STOPWORDS)
        weight = LEAD_WEIGHT if index < LEAD_SENTENCES else 1.0
        scores[sentence] = raw * weight

    ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
    return [ScoredSentence(text=s, score=score) for s, score in ranked]


def summarize(
    text: str,
    length: SummaryLength,
    sentence_count: int | None = None,
) -> str:
    """Join the top-scoring sentences into a summary ending in one period.

    Sentences appear in descending score order, not document order.
    *sentence_count* overrides the default count for *length*.
    """
    n = sentence_count if sentence_count is not None else length.sentence_count
    selected = [s.text for s in score_sentences(text)[:n]]
    joined = SENTENCE_DELIMITER.join(selected).rstrip().rstrip(".")
    logger.debug("Selected %d sentence(s) for a %s summary", len(selected), length.value)
    return joined + "."
