"""TF-IDF keyword extraction restricted to a caller-supplied vocabulary."""

import logging
import math
import re
from collections import Counter
from collections.abc import Sequence

from pydantic import BaseModel

from docdigest.text.stopwords import STOPWORDS

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 10

_WORD_RE = re.compile(r"\w+", re.UNICODE)


# ── Models ───────────────────────────────────────────────────────────


class TermScore(BaseModel):
    """A vocabulary term and its TF-IDF weight."""

    term: str
    weight: float


# ── Corpus ───────────────────────────────────────────────────────────


class TfIdfCorpus:
    """Term counts per document with smoothed inverse document frequency.

    idf(t) = 1 + ln(N / (1 + df(t))). With a single document that contains
    the term this is a constant (1 + ln 0.5), so ranking reduces to raw term
    frequency.
    """

    def __init__(self) -> None:
        self._documents: list[Counter] = []

    def add_document(self, text: str) -> None:
        tokens = [t for t in tokenize(text) if t not in STOPWORDS]
        self._documents.append(Counter(tokens))

    def __len__(self) -> int:
        return len(self._documents)

    def idf(self, term: str) -> float:
        if not self._documents:
            return 0.0
        df = sum(1 for doc in self._documents if term in doc)
        return 1 + math.log(len(self._documents) / (1 + df))

    def tfidf(self, term: str, doc_index: int = 0) -> float:
        if not self._documents:
            return 0.0
        return self._documents[doc_index][term] * self.idf(term)


# ── Public API ───────────────────────────────────────────────────────


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens; punctuation and whitespace are separators."""
    return _WORD_RE.findall(text.lower())


def score_terms(text: str, domain_vocabulary: Sequence[str]) -> list[TermScore]:
    """Weight every non-stopword vocabulary term found in *text*, highest first.

    Vocabulary membership is case-sensitive against lower-cased tokens, so
    vocabulary entries must already be lower-case. Ties keep first-occurrence
    order.
    """
    corpus = TfIdfCorpus()
    corpus.add_document(text)
    vocabulary = set(domain_vocabulary)

    weights: dict[str, float] = {}
    for token in tokenize(text):
        if token in STOPWORDS or token not in vocabulary:
            continue
        if token not in weights:
            weights[token] = corpus.tfidf(token)

    ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
    return [TermScore(term=t, weight=w) for t, w in ranked]


def extract_keywords(
    text: str,
    domain_vocabulary: Sequence[str],
    limit: int = MAX_KEYWORDS,
) -> list[str]:
    """Return up to *limit* vocabulary terms ranked by TF-IDF weight."""
    scored = score_terms(text, domain_vocabulary)
    keywords = [s.term for s in scored[:limit]]
    logger.debug("Extracted %d keyword(s) from %d candidate(s)", len(keywords), len(scored))
    return keywords
