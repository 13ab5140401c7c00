"""Recognition dispatch state machine.

Turns the stream of partial and final hypotheses, timer expiries and key
presses into discrete actions. Everything runs on the caller's thread; the
machine never sleeps and never waits on the actions it launches.

Listening rules, evaluated for every new distinct partial and every final:

1. Toggle phrase -> ask the ModeController to toggle, commit, reset.
2. Exact command phrase -> run its action, commit, reset.
3. Fuzzy match above threshold -> resolve as 1 or 2. A partial that is
   still a strict prefix of its fuzzy winner counts as incomplete speech
   (rule 4); a final resolves it.
4. Strict prefix of a known phrase -> hold and (re)arm the prefix timer.
5. Anything else -> log the miss and reset at once.
"""

import logging
import re
import shlex
from collections.abc import Callable
from urllib.parse import quote_plus

from voxcmd.config import CAPTURE_PLACEHOLDER, EXIT_KEY, TOGGLE_HOTKEY
from voxcmd.errors import ActionSpawnError, ConfigError
from voxcmd.dispatch.command_table import CommandTable
from voxcmd.dispatch.fuzzy_matcher import FuzzyMatcher
from voxcmd.dispatch.interfaces import ActionExecutor
from voxcmd.dispatch.mode_controller import ModeController
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.typing_echo import TypingEcho
from voxcmd.dispatch.types import (
    DispatchDecision,
    DispatchState,
    HotKey,
    Hypothesis,
    KeyEvent,
    MatchKind,
    MatchResult,
    Mode,
    Outcome,
    TimerFired,
    TimerKind,
    ToggleSource,
)

logger = logging.getLogger(__name__)


class Session:
    """Mutable state of a single decode pass."""

    def __init__(self, mode: Mode, started_at: float) -> None:
        self.mode = mode
        self.started_at = started_at
        self.last_partial: str = ""
        self.last_speech_at: float | None = None
        self.prefix_hold_started_at: float | None = None


class DispatchStateMachine:
    """Central FSM: Idle -> Awaiting -> PartialSeen/PrefixHolding -> Committed."""

    def __init__(
        self,
        command_table: CommandTable,
        executor: ActionExecutor,
        governor: TimeoutGovernor,
        mode_controller: ModeController,
        *,
        matcher: FuzzyMatcher | None = None,
        typing_echo: TypingEcho | None = None,
        decoder_reset: Callable[[], None] | None = None,
        toggle_hotkey: HotKey | str = TOGGLE_HOTKEY,
        exit_key: str = EXIT_KEY,
    ) -> None:
        self._table = command_table
        self._executor = executor
        self._governor = governor
        self._modes = mode_controller
        self._matcher = matcher or FuzzyMatcher()
        self._echo = typing_echo or TypingEcho(hold_back=self._is_toggle_prefix)
        self._decoder_reset = decoder_reset
        if isinstance(toggle_hotkey, HotKey):
            self._toggle_hotkey = toggle_hotkey
        else:
            try:
                self._toggle_hotkey = HotKey.parse(toggle_hotkey)
            except ValueError as exc:
                raise ConfigError(f"Invalid toggle hot-key: {exc}") from exc
        self._exit_key = exit_key.lower()

        self._state = DispatchState.IDLE
        self._session: Session | None = None
        self._last_partial: str = ""
        self._cooldown_phrase: str | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def mode(self) -> Mode:
        return self._modes.mode

    def set_decoder_reset(self, callback: Callable[[], None] | None) -> None:
        """Point the reset hook at the transcriber of the current pass."""
        self._decoder_reset = callback

    # ------------------------------------------------------------------
    # Pass lifecycle
    # ------------------------------------------------------------------

    def begin_pass(self) -> Session:
        """Open a fresh decode pass in the Awaiting state."""
        self._session = Session(self._modes.mode, self._governor.now())
        self._state = DispatchState.AWAITING
        return self._session

    def reset(self, reason: str) -> None:
        """Abandon the current pass and discard the decoder's state."""
        self._governor.disarm_all(TimerKind.SILENCE_RESET, TimerKind.PREFIX_HOLD)
        self._modes.leave_prefix_wait()
        self._session = None
        self._state = DispatchState.IDLE
        if self._decoder_reset is not None:
            self._decoder_reset()
        logger.debug("Pass reset: %s", reason)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def handle_hypothesis(self, hypothesis: Hypothesis) -> DispatchDecision | None:
        """Dispatch one hypothesis. Returns None if it was not new.

        Partials are compared with the previous partial seen, across pass
        resets, so an unchanged partial never triggers twice. An empty
        partial or any final clears that memory.
        """
        text = hypothesis.text
        if hypothesis.is_final:
            self._last_partial = ""
        else:
            if text == self._last_partial:
                return None
            self._last_partial = text
            if not text:
                return None

        if self._session is None:
            self.begin_pass()
        if not hypothesis.is_final:
            self._session.last_partial = text
            self._session.last_speech_at = self._governor.now()

        if self._modes.is_dictating:
            return self._dictate(hypothesis)
        if self._modes.is_capturing:
            return self._capture(hypothesis)
        return self._listen(hypothesis)

    def handle_timer(self, fired: TimerFired) -> DispatchDecision | None:
        timer = fired.timer

        if timer == TimerKind.MATCH_COOLDOWN:
            self._cooldown_phrase = None
            return None

        if timer == TimerKind.SILENCE_RESET:
            if self._state in (DispatchState.PARTIAL_SEEN, DispatchState.PREFIX_HOLDING):
                logger.info("Silence after %r, resetting", self._current_text())
                return self._reset_decision("silence")
            return None

        if timer == TimerKind.PREFIX_HOLD:
            if self._state == DispatchState.PREFIX_HOLDING:
                logger.info("Prefix %r was not completed in time", self._current_text())
                return self._reset_decision("prefix hold expired")
            return None

        if timer == TimerKind.DICTATION_IDLE:
            if self._modes.is_dictating:
                self._echo.reset()
                self._modes.exit_to_listening("dictation idle timeout")
                self.reset("dictation idle timeout")
                return DispatchDecision(outcome=Outcome.TOGGLE, text="")
            return None

        if timer == TimerKind.CAPTURE_WINDOW:
            if self._modes.is_capturing:
                return self._finish_capture()
            return None

        return None

    def handle_key(self, event: KeyEvent) -> DispatchDecision | None:
        if self._toggle_hotkey.matches(event):
            return self._toggle("", MatchResult(), ToggleSource.KEY)

        if event.key.lower() == self._exit_key and not self._modes.is_listening:
            self._echo.reset()
            self._modes.exit_to_listening("exit key")
            self.reset("exit key")
            return DispatchDecision(outcome=Outcome.TOGGLE, text="")

        return None

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    def _listen(self, hypothesis: Hypothesis) -> DispatchDecision:
        text = hypothesis.text

        if hypothesis.is_final:
            if not text:
                logger.debug("Empty final hypothesis")
                return self._reset_decision("empty final")
            logger.info("Final recognized: %s", text)
        else:
            self._state = DispatchState.PARTIAL_SEEN
            self._governor.arm(TimerKind.SILENCE_RESET)

        if self._table.is_toggle(text):
            match = MatchResult(phrase=text, score=1.0, kind=MatchKind.EXACT)
            return self._toggle(text, match, ToggleSource.VOICE)

        action = self._table.lookup_exact(text)
        if action is not None:
            match = MatchResult(phrase=text, score=1.0, kind=MatchKind.EXACT)
            return self._commit(text, action, match)

        match = self._matcher.best_match(text, self._table.phrases())
        # Only a partial can still grow into the phrase it prefixes.
        if match.matched and (
            hypothesis.is_final or not _is_strict_prefix(text, match.phrase)
        ):
            if self._table.is_toggle(match.phrase):
                return self._toggle(text, match, ToggleSource.VOICE)
            return self._commit(text, self._table.action_for(match.phrase), match)

        if not hypothesis.is_final and self._table.has_prefix(text):
            return self._hold(text)

        logger.info(
            "No command matches %r (best score %.2f)", text, match.score
        )
        self.reset("unmatched")
        return DispatchDecision(outcome=Outcome.MISS, text=text, match=match)

    def _hold(self, text: str) -> DispatchDecision:
        if self._session.prefix_hold_started_at is None:
            self._session.prefix_hold_started_at = self._governor.now()
            logger.debug("Holding for completion of %r", text)
        self._state = DispatchState.PREFIX_HOLDING
        self._modes.enter_prefix_wait()
        self._governor.arm(TimerKind.PREFIX_HOLD)
        return DispatchDecision(
            outcome=Outcome.HOLD,
            text=text,
            match=MatchResult(kind=MatchKind.PREFIX),
        )

    def _commit(self, text: str, action: str, match: MatchResult) -> DispatchDecision:
        phrase = match.phrase

        if phrase is not None and phrase == self._cooldown_phrase:
            logger.info("Ignoring repeat of %r during cooldown", phrase)
            self.reset("cooldown")
            return DispatchDecision(
                outcome=Outcome.COOLDOWN, text=text, phrase=phrase, match=match
            )

        self._state = DispatchState.COMMITTED
        self._cooldown_phrase = phrase
        self._governor.arm(TimerKind.MATCH_COOLDOWN)

        if not action:
            logger.info("Matched %r but no action is configured", phrase)
            self.reset("empty action")
            return DispatchDecision(
                outcome=Outcome.IGNORED, text=text, phrase=phrase, action="", match=match
            )

        if self._table.is_capture_action(action):
            self.reset("capture started")
            self._modes.start_capture(phrase, action)
            return DispatchDecision(
                outcome=Outcome.CAPTURE_STARTED,
                text=text,
                phrase=phrase,
                action=action,
                match=match,
            )

        logger.info(
            "Matched %r (%s, score=%.2f): running `%s`",
            phrase, match.kind.value, match.score, action,
        )
        spawned = self._run(action, phrase)
        self.reset("committed")
        return DispatchDecision(
            outcome=Outcome.ACTION,
            text=text,
            phrase=phrase,
            action=action,
            match=match,
            spawned=spawned,
        )

    def _toggle(
        self, text: str, match: MatchResult, source: ToggleSource
    ) -> DispatchDecision:
        if not self._modes.request_toggle(source):
            return DispatchDecision(outcome=Outcome.IGNORED, text=text, match=match)
        self._state = DispatchState.COMMITTED
        self._echo.reset()
        self.reset(f"toggle via {source.value}")
        return DispatchDecision(
            outcome=Outcome.TOGGLE,
            text=text,
            phrase=self._table.toggle_phrase,
            match=match,
        )

    # ------------------------------------------------------------------
    # Dictation and capture
    # ------------------------------------------------------------------

    def _dictate(self, hypothesis: Hypothesis) -> DispatchDecision:
        text = hypothesis.text
        if text:
            self._modes.note_activity()

        if self._table.is_toggle(text):
            match = MatchResult(phrase=text, score=1.0, kind=MatchKind.EXACT)
            return self._toggle(text, match, ToggleSource.VOICE)

        if hypothesis.is_final:
            chunk = self._echo.on_final(text)
            self.reset("final")
        else:
            self._state = DispatchState.PARTIAL_SEEN
            chunk = self._echo.on_partial(text)

        if not chunk:
            return DispatchDecision(outcome=Outcome.IGNORED, text=text)

        logger.debug("Typing %r", chunk)
        spawned = self._type(chunk)
        return DispatchDecision(outcome=Outcome.TYPED, text=chunk, spawned=spawned)

    def _capture(self, hypothesis: Hypothesis) -> DispatchDecision:
        capture = self._modes.capture
        text = hypothesis.text
        if hypothesis.is_final:
            capture.add_final(text)
            self.reset("final")
        else:
            self._state = DispatchState.PARTIAL_SEEN
            capture.add_partial(text)
        return DispatchDecision(outcome=Outcome.CAPTURED, text=text, phrase=capture.phrase)

    def _finish_capture(self) -> DispatchDecision:
        capture = self._modes.finish_capture()
        self.reset("capture window closed")
        text = capture.text
        if not text:
            logger.info("Nothing captured for %r, action not run", capture.phrase)
            return DispatchDecision(
                outcome=Outcome.CAPTURE_FINISHED, text="", phrase=capture.phrase
            )

        command = fill_placeholder(capture.action, text)
        logger.info("Captured %r for %r: running `%s`", text, capture.phrase, command)
        spawned = self._run(command, capture.phrase)
        return DispatchDecision(
            outcome=Outcome.CAPTURE_FINISHED,
            text=text,
            phrase=capture.phrase,
            action=command,
            spawned=spawned,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, command: str, phrase: str | None) -> bool:
        try:
            self._executor.run(command)
            return True
        except ActionSpawnError as exc:
            logger.warning("Action for %r failed to launch: %s", phrase, exc)
            return False

    def _type(self, text: str) -> bool:
        try:
            self._executor.type_text(text)
            return True
        except ActionSpawnError as exc:
            logger.warning("Could not type %r: %s", text, exc)
            return False

    def _reset_decision(self, reason: str) -> DispatchDecision:
        text = self._current_text()
        self.reset(reason)
        return DispatchDecision(outcome=Outcome.RESET, text=text)

    def _current_text(self) -> str:
        return self._session.last_partial if self._session else ""

    def _is_toggle_prefix(self, text: str) -> bool:
        return _is_strict_prefix(text, self._table.toggle_phrase)


def _is_strict_prefix(text: str, phrase: str | None) -> bool:
    return phrase is not None and phrase != text and phrase.startswith(text)


def fill_placeholder(action: str, text: str) -> str:
    """Substitute *text* for every ``{text}`` in *action*.

    Within a URL token the text is URL-encoded; anywhere else it is
    shell-quoted.
    """
    parts = []
    for token in re.split(r"(\s+)", action):
        if CAPTURE_PLACEHOLDER in token:
            value = quote_plus(text) if "://" in token else shlex.quote(text)
            token = token.replace(CAPTURE_PLACEHOLDER, value)
        parts.append(token)
    return "".join(parts)
