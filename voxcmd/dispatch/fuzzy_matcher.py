"""Jaro-Winkler matching of a hypothesis against the known phrase set."""

import logging
from collections.abc import Iterable

from rapidfuzz.distance import JaroWinkler

from voxcmd.config import FUZZY_THRESHOLD
from voxcmd.dispatch.types import MatchKind, MatchResult, normalize_text

logger = logging.getLogger(__name__)


class FuzzyMatcher:
    """Scores a candidate against every phrase and keeps the best one.

    A phrase qualifies only if its similarity strictly exceeds the
    threshold. Phrases are scanned shortest first, then lexically, and the
    running best is only replaced on a strictly higher score, so equal
    scores always resolve the same way.
    """

    def __init__(self, threshold: float = FUZZY_THRESHOLD) -> None:
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def best_match(self, candidate: str, phrase_set: Iterable[str]) -> MatchResult:
        candidate = normalize_text(candidate)
        phrases = sorted(phrase_set, key=lambda p: (len(p), p))
        if not candidate or not phrases:
            return MatchResult()

        if candidate in phrases:
            return MatchResult(phrase=candidate, score=1.0, kind=MatchKind.EXACT)

        best_phrase: str | None = None
        best_score = 0.0
        for phrase in phrases:
            score = JaroWinkler.similarity(candidate, phrase)
            if score > best_score:
                best_score = score
                best_phrase = phrase

        if best_phrase is not None and best_score > self._threshold:
            logger.debug(
                "Fuzzy match %r -> %r (score=%.3f)", candidate, best_phrase, best_score
            )
            return MatchResult(phrase=best_phrase, score=best_score, kind=MatchKind.FUZZY)

        return MatchResult(phrase=None, score=best_score, kind=MatchKind.NONE)
