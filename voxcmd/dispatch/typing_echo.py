"""Turns dictated hypotheses into the text that should actually be typed.

Two strategies:

- ``progressive``: partials are echoed as they grow. When a new partial
  extends the previous one only the delta is typed; otherwise the whole
  partial is typed and becomes the new baseline. A final clears the
  baseline.
- ``final``: nothing is typed until a final arrives, then the whole final
  is typed.

Consecutive utterances are separated by a single space.
"""

import logging
from collections.abc import Callable

from voxcmd.config import TYPING_STRATEGY

logger = logging.getLogger(__name__)

PROGRESSIVE = "progressive"
FINAL_ONLY = "final"


class TypingEcho:
    """Computes what to type for each dictated hypothesis."""

    def __init__(
        self,
        strategy: str = TYPING_STRATEGY,
        hold_back: Callable[[str], bool] | None = None,
    ) -> None:
        if strategy not in (PROGRESSIVE, FINAL_ONLY):
            logger.warning(
                "Unknown typing strategy %r, using %r", strategy, PROGRESSIVE
            )
            strategy = PROGRESSIVE
        self._strategy = strategy
        # Partials for which hold_back() is true are not echoed yet.
        self._hold_back = hold_back
        self._baseline: str = ""
        self._separator: str = ""

    @property
    def strategy(self) -> str:
        return self._strategy

    @property
    def baseline(self) -> str:
        return self._baseline

    def reset(self) -> None:
        """Forget the baseline and the pending separator."""
        self._baseline = ""
        self._separator = ""

    def on_partial(self, text: str) -> str:
        if self._strategy != PROGRESSIVE or not text:
            return ""
        if self._hold_back and self._hold_back(text):
            return ""
        return self._advance(text)

    def on_final(self, text: str) -> str:
        if self._strategy == PROGRESSIVE:
            typed = self._advance(text) if text else ""
        else:
            typed = self._emit(text) if text else ""
        self._baseline = ""
        if text:
            self._separator = " "
        return typed

    def _advance(self, text: str) -> str:
        if self._baseline and text.startswith(self._baseline):
            delta = text[len(self._baseline):]
        else:
            delta = text
        self._baseline = text
        return self._emit(delta) if delta else ""

    def _emit(self, chunk: str) -> str:
        out = self._separator + chunk
        self._separator = ""
        return out
