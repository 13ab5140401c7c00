"""Pydantic models and enums for the dispatch subsystem."""

import time
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def normalize_text(text: str) -> str:
    """Collapse whitespace, trim, and case-fold *text*."""
    return " ".join(text.split()).casefold()


class HypothesisKind(str, Enum):
    """Whether a transcript is still revisable or closes a decode pass."""

    PARTIAL = "partial"
    FINAL = "final"


class MatchKind(str, Enum):
    """How a hypothesis relates to the known phrase set."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    PREFIX = "prefix"
    NONE = "none"


class Mode(str, Enum):
    """Top-level operating mode, owned by the ModeController."""

    LISTENING = "listening"
    PREFIX_WAIT = "prefix_wait"
    DICTATION = "dictation"
    SEARCH_CAPTURE = "search_capture"


class DispatchState(str, Enum):
    """Position of the state machine within a decode pass."""

    IDLE = "idle"
    AWAITING = "awaiting"
    PARTIAL_SEEN = "partial_seen"
    PREFIX_HOLDING = "prefix_holding"
    COMMITTED = "committed"


class TimerKind(str, Enum):
    """Timers owned by the TimeoutGovernor."""

    SILENCE_RESET = "silence_reset"
    PREFIX_HOLD = "prefix_hold"
    DICTATION_IDLE = "dictation_idle"
    CAPTURE_WINDOW = "capture_window"
    MATCH_COOLDOWN = "match_cooldown"


class ToggleSource(str, Enum):
    """Channel a mode-toggle request arrived on."""

    VOICE = "voice"
    KEY = "key"


class DecodeState(str, Enum):
    """Result of feeding one chunk of samples to a transcriber."""

    FINALIZED = "finalized"
    CONTINUING = "continuing"
    FAILED = "failed"


class Outcome(str, Enum):
    """What the state machine did with an event."""

    ACTION = "action"
    TOGGLE = "toggle"
    CAPTURE_STARTED = "capture_started"
    CAPTURE_FINISHED = "capture_finished"
    HOLD = "hold"
    MISS = "miss"
    COOLDOWN = "cooldown"
    TYPED = "typed"
    CAPTURED = "captured"
    RESET = "reset"
    IGNORED = "ignored"


class Hypothesis(BaseModel):
    """A transcript produced by the transcriber for the current pass."""

    text: str
    kind: HypothesisKind

    @field_validator("text")
    @classmethod
    def _normalize(cls, value: str) -> str:
        return normalize_text(value)

    @classmethod
    def partial(cls, text: str) -> "Hypothesis":
        return cls(text=text, kind=HypothesisKind.PARTIAL)

    @classmethod
    def final(cls, text: str) -> "Hypothesis":
        return cls(text=text, kind=HypothesisKind.FINAL)

    @property
    def is_final(self) -> bool:
        return self.kind == HypothesisKind.FINAL


class MatchResult(BaseModel):
    """Result of matching a hypothesis against the phrase set."""

    phrase: str | None = None
    score: float = 0.0
    kind: MatchKind = MatchKind.NONE

    @property
    def matched(self) -> bool:
        return self.kind in (MatchKind.EXACT, MatchKind.FUZZY)


class KeyEvent(BaseModel):
    """A single key press with modifier flags."""

    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False


class HotKey(BaseModel):
    """A key combination such as ``ctrl+alt+t``."""

    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False

    @classmethod
    def parse(cls, spec: str) -> "HotKey":
        """Parse ``"ctrl+alt+t"``-style strings. The last part is the key."""
        parts = [p.strip().lower() for p in spec.split("+") if p.strip()]
        if not parts:
            raise ValueError(f"Empty hot-key specification: {spec!r}")
        *modifiers, key = parts
        unknown = set(modifiers) - {"ctrl", "alt", "shift"}
        if unknown:
            raise ValueError(f"Unknown modifiers in {spec!r}: {sorted(unknown)}")
        return cls(
            key=key,
            ctrl="ctrl" in modifiers,
            alt="alt" in modifiers,
            shift="shift" in modifiers,
        )

    def matches(self, event: KeyEvent) -> bool:
        return (
            event.key.lower() == self.key
            and event.ctrl == self.ctrl
            and event.alt == self.alt
            and event.shift == self.shift
        )


class TimerFired(BaseModel):
    """Synthetic event emitted when an armed timer expires."""

    timer: TimerKind
    fired_at: float


class DispatchDecision(BaseModel):
    """Record of a single state-machine decision."""

    outcome: Outcome
    text: str = ""
    phrase: str | None = None
    action: str | None = None
    match: MatchResult | None = None
    spawned: bool | None = None
    timestamp: float = Field(default_factory=time.time)
