"""Core poll loop: wires audio, transcriber, keys and timers into the FSM.

Each ``run_once()`` iteration:

1. polls the key source with a short timeout,
2. reads whatever audio is available (bounded wait),
3. decodes it into int16 samples and feeds the transcriber,
4. checks every armed timer against the clock.

Nothing runs in the background except the key listener and the launched
actions, and the loop never waits on either.
"""

import logging
import time
from collections.abc import Callable
from pathlib import Path

from voxcmd.config import (
    AUDIO_POLL_TIMEOUT,
    AUDIO_RESTART_BACKOFF,
    AUDIO_SAMPLE_RATE,
    KEY_POLL_TIMEOUT,
    load_commands,
)
from voxcmd.dispatch.command_table import CommandTable
from voxcmd.dispatch.interfaces import (
    ActionExecutor,
    AudioFrameSource,
    KeyEventSource,
    Transcriber,
)
from voxcmd.dispatch.mode_controller import ModeController
from voxcmd.dispatch.state_machine import DispatchStateMachine
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.types import (
    DecodeState,
    DispatchDecision,
    DispatchState,
    Hypothesis,
    Mode,
)
from voxcmd.errors import AudioSourceError, DecodeError
from voxcmd.io.audio_source import PcmDecoder

logger = logging.getLogger(__name__)

TranscriberFactory = Callable[[list[str] | None], Transcriber]
DecisionListener = Callable[[DispatchDecision], None]


class DispatchEngine:
    """Owns the decode pass and drives the dispatch state machine."""

    def __init__(
        self,
        command_table: CommandTable,
        *,
        transcriber_factory: TranscriberFactory,
        audio_source: AudioFrameSource,
        executor: ActionExecutor,
        key_source: KeyEventSource | None = None,
        governor: TimeoutGovernor | None = None,
        key_poll_timeout: float = KEY_POLL_TIMEOUT,
        audio_poll_timeout: float = AUDIO_POLL_TIMEOUT,
        restart_backoff: float = AUDIO_RESTART_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
        on_decision: DecisionListener | None = None,
    ) -> None:
        self._table = command_table
        self._transcriber_factory = transcriber_factory
        self._audio = audio_source
        self._keys = key_source
        self._governor = governor or TimeoutGovernor()
        self._modes = ModeController(command_table, self._governor)
        self._machine = DispatchStateMachine(
            command_table, executor, self._governor, self._modes
        )
        self._key_poll_timeout = key_poll_timeout
        self._audio_poll_timeout = audio_poll_timeout
        self._restart_backoff = restart_backoff
        self._sleep = sleep
        self._on_decision = on_decision

        self._pcm = PcmDecoder()
        self._transcriber: Transcriber | None = None
        self._audio_ready: bool = False
        self._running: bool = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the key listener and open the first decode pass."""
        if self._keys is not None:
            try:
                self._keys.start()
            except Exception:
                logger.warning("Keyboard listener unavailable, hot-keys disabled", exc_info=True)
                self._keys = None

        self._running = True
        self._start_pass()
        logger.info(
            "Ready. Say a command or %r for typing mode...", self._table.toggle_phrase
        )

    def stop(self) -> None:
        """Tear down the audio pass and the key listener."""
        self._running = False
        self._audio.stop()
        self._audio_ready = False
        if self._keys is not None:
            self._keys.stop()
        logger.info("Dispatch engine stopped")

    def run(self) -> None:
        """Run the loop until ``stop()`` is called or the process is interrupted."""
        self.start()
        try:
            while self._running:
                self.run_once()
        finally:
            self.stop()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def mode(self) -> Mode:
        return self._modes.mode

    @property
    def state(self) -> DispatchState:
        return self._machine.state

    @property
    def machine(self) -> DispatchStateMachine:
        return self._machine

    @property
    def modes(self) -> ModeController:
        return self._modes

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run_once(self) -> None:
        """One poll cycle: keys, audio, timers."""
        self._modes.begin_cycle()

        if self._keys is not None:
            event = self._keys.poll(self._key_poll_timeout)
            if event is not None:
                self._record(self._machine.handle_key(event))
        self._restart_if_requested()

        if not self._audio_ready:
            self._start_audio()

        if self._audio_ready:
            data = self._audio.read(self._audio_poll_timeout)
            if data == b"":
                logger.warning("Audio stream ended, restarting capture")
                self._machine.reset("end of stream")
                self._restart_pass()
            elif data:
                try:
                    self._feed(data)
                except DecodeError as exc:
                    logger.warning("%s", exc)
                    self._machine.reset("decode error")
                    self._restart_pass()

        for fired in self._governor.poll():
            self._record(self._machine.handle_timer(fired))
        self._restart_if_requested()

    def _feed(self, data: bytes) -> None:
        samples = self._pcm.decode(data)
        if samples.size == 0:
            return

        state = self._transcriber.accept(samples)
        if state == DecodeState.FAILED:
            session = self._machine.session
            last = session.last_partial if session is not None else ""
            raise DecodeError(
                f"Transcriber rejected {samples.size} samples (last partial {last!r})"
            )
        if state == DecodeState.FINALIZED:
            hypothesis = Hypothesis.final(self._transcriber.result())
        else:
            hypothesis = Hypothesis.partial(self._transcriber.partial())
        self._record(self._machine.handle_hypothesis(hypothesis))

    # ------------------------------------------------------------------
    # Decode pass management
    # ------------------------------------------------------------------

    def _start_pass(self) -> None:
        grammar = self._modes.grammar()
        self._transcriber = self._transcriber_factory(grammar)
        self._machine.set_decoder_reset(self._transcriber.reset)
        self._pcm.reset()
        self._machine.begin_pass()
        self._start_audio()

    def _restart_pass(self) -> None:
        self._audio.stop()
        self._audio_ready = False
        logger.debug("Restarting decode pass in %s mode", self._modes.mode.value)
        self._start_pass()

    def _restart_if_requested(self) -> None:
        if self._modes.consume_restart():
            self._restart_pass()

    def _start_audio(self) -> None:
        try:
            self._audio.start()
        except AudioSourceError as exc:
            logger.warning("%s; retrying in %.1fs", exc, self._restart_backoff)
            self._audio_ready = False
            self._sleep(self._restart_backoff)
            return
        self._audio_ready = True

    def _record(self, decision: DispatchDecision | None) -> None:
        if decision is None:
            return
        logger.debug(
            "Decision: %s text=%r phrase=%r", decision.outcome.value, decision.text, decision.phrase
        )
        if self._on_decision is not None:
            self._on_decision(decision)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_engine(
    commands_path: Path | str | None = None,
    model_path: Path | str | None = None,
    *,
    sample_rate: int = AUDIO_SAMPLE_RATE,
) -> DispatchEngine:
    """Build an engine wired to Vosk, the configured audio source and pynput.

    Raises ``ConfigError`` or ``ModelLoadError``; both are fatal.
    """
    from voxcmd.config import MODEL_PATH
    from voxcmd.io.audio_source import create_audio_source
    from voxcmd.io.executor import ShellActionExecutor
    from voxcmd.io.key_source import PynputKeySource
    from voxcmd.io.transcriber import VoskTranscriber, load_model

    config = load_commands(commands_path)
    table = CommandTable(config.commands)
    model = load_model(model_path if model_path is not None else MODEL_PATH)

    def _transcriber(grammar: list[str] | None) -> Transcriber:
        return VoskTranscriber(model, sample_rate, grammar)

    return DispatchEngine(
        table,
        transcriber_factory=_transcriber,
        audio_source=create_audio_source(),
        executor=ShellActionExecutor(),
        key_source=PynputKeySource(),
    )
