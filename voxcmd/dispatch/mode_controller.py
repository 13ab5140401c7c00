"""Arbitration between Listening, Dictation and SearchCapture modes."""

import logging
from collections.abc import Callable

from voxcmd.dispatch.command_table import CommandTable
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.types import Mode, TimerKind, ToggleSource

logger = logging.getLogger(__name__)

ModeListener = Callable[[Mode, Mode], None]

# Modes that recognize against the command grammar.
_LISTENING_MODES = (Mode.LISTENING, Mode.PREFIX_WAIT)


class ActiveCapture:
    """A bounded one-shot dictation feeding a single command's action."""

    def __init__(self, phrase: str, action: str) -> None:
        self.phrase = phrase
        self.action = action
        self.finals: list[str] = []
        self.partial: str = ""

    def add_partial(self, text: str) -> None:
        self.partial = text

    def add_final(self, text: str) -> None:
        if text:
            self.finals.append(text)
        self.partial = ""

    @property
    def text(self) -> str:
        parts = self.finals + ([self.partial] if self.partial else [])
        return " ".join(parts).strip()


class ModeController:
    """Owns the current ``Mode``.

    The state machine only requests transitions. Switching between
    top-level modes changes the recognition grammar, so every such switch
    raises a restart flag that the engine consumes to rebuild the
    transcriber and restart the audio pass.

    Toggle requests from the voice and key channels are serviced on a
    first-come basis per poll cycle: after one toggle has been applied,
    further toggles in the same cycle are not observed.
    """

    def __init__(
        self,
        command_table: CommandTable,
        governor: TimeoutGovernor,
        on_change: ModeListener | None = None,
    ) -> None:
        self._table = command_table
        self._governor = governor
        self._on_change = on_change
        self._mode = Mode.LISTENING
        self._capture: ActiveCapture | None = None
        self._toggled_this_cycle: bool = False
        self._restart_requested: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def is_listening(self) -> bool:
        return self._mode in _LISTENING_MODES

    @property
    def is_dictating(self) -> bool:
        return self._mode == Mode.DICTATION

    @property
    def is_capturing(self) -> bool:
        return self._mode == Mode.SEARCH_CAPTURE

    @property
    def capture(self) -> ActiveCapture | None:
        return self._capture

    def grammar(self) -> list[str] | None:
        """Phrase list for the transcriber, or None for open vocabulary."""
        if self.is_listening:
            return sorted(self._table.phrases())
        return None

    # ------------------------------------------------------------------
    # Poll-cycle bookkeeping
    # ------------------------------------------------------------------

    def begin_cycle(self) -> None:
        """Start a new poll cycle; re-opens the toggle window."""
        self._toggled_this_cycle = False

    def consume_restart(self) -> bool:
        """Return True once after any grammar-changing transition."""
        requested = self._restart_requested
        self._restart_requested = False
        return requested

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_toggle(self, source: ToggleSource) -> bool:
        """Toggle between Listening and Dictation.

        A toggle while capturing cancels the capture and returns to
        Listening. Returns False if a toggle was already serviced in this
        cycle.
        """
        if self._toggled_this_cycle:
            logger.debug("Toggle from %s ignored: already toggled this cycle", source.value)
            return False
        self._toggled_this_cycle = True

        if self.is_listening:
            self._enter_dictation()
        else:
            self._return_to_listening()
        logger.info("Mode toggled via %s -> %s", source.value, self._mode.value)
        return True

    def exit_to_listening(self, reason: str) -> bool:
        """Leave Dictation or SearchCapture. No-op if already listening."""
        if self.is_listening:
            return False
        logger.info("Leaving %s (%s)", self._mode.value, reason)
        self._return_to_listening()
        return True

    def enter_prefix_wait(self) -> None:
        if self._mode == Mode.LISTENING:
            self._set_mode(Mode.PREFIX_WAIT, restart=False)

    def leave_prefix_wait(self) -> None:
        if self._mode == Mode.PREFIX_WAIT:
            self._set_mode(Mode.LISTENING, restart=False)

    def start_capture(self, phrase: str, action: str) -> ActiveCapture:
        """Begin a bounded free-text capture for *action*."""
        self._capture = ActiveCapture(phrase, action)
        self._governor.disarm(TimerKind.DICTATION_IDLE)
        self._governor.arm(TimerKind.CAPTURE_WINDOW)
        self._set_mode(Mode.SEARCH_CAPTURE, restart=True)
        logger.info(
            "Capturing text for %r (%.1fs window)",
            phrase,
            self._governor.duration(TimerKind.CAPTURE_WINDOW),
        )
        return self._capture

    def finish_capture(self) -> ActiveCapture | None:
        """End the current capture and return it, back in Listening."""
        capture = self._capture
        if capture is None:
            return None
        self._return_to_listening()
        return capture

    def note_activity(self) -> None:
        """Record a new dictated hypothesis; pushes the idle timeout back."""
        if self.is_dictating:
            self._governor.arm(TimerKind.DICTATION_IDLE)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _enter_dictation(self) -> None:
        self._governor.arm(TimerKind.DICTATION_IDLE)
        self._set_mode(Mode.DICTATION, restart=True)

    def _return_to_listening(self) -> None:
        self._capture = None
        self._governor.disarm_all(TimerKind.DICTATION_IDLE, TimerKind.CAPTURE_WINDOW)
        self._set_mode(Mode.LISTENING, restart=True)

    def _set_mode(self, mode: Mode, *, restart: bool) -> None:
        previous = self._mode
        if previous == mode:
            return
        self._mode = mode
        if restart:
            self._restart_requested = True
        logger.debug("Mode %s -> %s", previous.value, mode.value)
        if self._on_change:
            self._on_change(previous, mode)
