"""Shared fixtures for voxcmd tests."""

from unittest.mock import MagicMock

import pytest

from voxcmd.dispatch.command_table import CommandTable
from voxcmd.dispatch.interfaces import ActionExecutor
from voxcmd.dispatch.mode_controller import ModeController
from voxcmd.dispatch.state_machine import DispatchStateMachine
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.types import TimerKind

# Phrase table reused across most tests.
COMMANDS = {
    "open browser": "xdg-open https://example.com",
    "lock screen": "loginctl lock-session",
    "search web": "xdg-open https://duckduckgo.com/?q={text}",
    "do nothing": "",
}

DURATIONS = {
    TimerKind.SILENCE_RESET: 1.2,
    TimerKind.PREFIX_HOLD: 0.5,
    TimerKind.DICTATION_IDLE: 8.0,
    TimerKind.CAPTURE_WINDOW: 5.0,
    TimerKind.MATCH_COOLDOWN: 1.0,
}


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def command_table() -> CommandTable:
    """Return the standard table with the default ``type on`` toggle."""
    return CommandTable(COMMANDS, toggle_phrase="type on")


@pytest.fixture
def durations() -> dict:
    return dict(DURATIONS)


@pytest.fixture
def governor(clock: FakeClock, durations: dict) -> TimeoutGovernor:
    return TimeoutGovernor(clock=clock, durations=durations)


@pytest.fixture
def executor() -> MagicMock:
    """A mock ActionExecutor that records every launch."""
    return MagicMock(spec=ActionExecutor)


@pytest.fixture
def modes(command_table: CommandTable, governor: TimeoutGovernor) -> ModeController:
    return ModeController(command_table, governor)


@pytest.fixture
def decoder_reset() -> MagicMock:
    return MagicMock()


@pytest.fixture
def machine(
    command_table: CommandTable,
    executor: MagicMock,
    governor: TimeoutGovernor,
    modes: ModeController,
    decoder_reset: MagicMock,
) -> DispatchStateMachine:
    """A state machine wired to a mock executor and a fake clock."""
    return DispatchStateMachine(
        command_table,
        executor,
        governor,
        modes,
        decoder_reset=decoder_reset,
        toggle_hotkey="ctrl+alt+t",
        exit_key="esc",
    )

