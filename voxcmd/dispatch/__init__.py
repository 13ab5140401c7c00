"""Recognition dispatch core for voxcmd."""

from voxcmd.dispatch.command_table import CommandTable
from voxcmd.dispatch.fuzzy_matcher import FuzzyMatcher
from voxcmd.dispatch.mode_controller import ModeController
from voxcmd.dispatch.state_machine import DispatchStateMachine
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.typing_echo import TypingEcho
from voxcmd.dispatch.types import (
    DispatchDecision,
    DispatchState,
    Hypothesis,
    HypothesisKind,
    MatchKind,
    MatchResult,
    Mode,
    Outcome,
    TimerKind,
)

__all__ = [
    "CommandTable",
    "DispatchDecision",
    "DispatchState",
    "DispatchStateMachine",
    "FuzzyMatcher",
    "Hypothesis",
    "HypothesisKind",
    "MatchKind",
    "MatchResult",
    "Mode",
    "ModeController",
    "Outcome",
    "TimeoutGovernor",
    "TimerKind",
    "TypingEcho",
]
