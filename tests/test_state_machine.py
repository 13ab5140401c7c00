"""Tests for voxcmd.dispatch.state_machine -- DispatchStateMachine."""

from unittest.mock import MagicMock

import pytest

from voxcmd.dispatch.mode_controller import ModeController
from voxcmd.dispatch.state_machine import DispatchStateMachine, fill_placeholder
from voxcmd.dispatch.timeout_governor import TimeoutGovernor
from voxcmd.dispatch.types import (
    DispatchState,
    Hypothesis,
    KeyEvent,
    MatchKind,
    Mode,
    Outcome,
    TimerKind,
)
from voxcmd.errors import ActionSpawnError, ConfigError

_TOGGLE_KEY = KeyEvent(key="t", ctrl=True, alt=True)


def fire_expired(machine: DispatchStateMachine, governor: TimeoutGovernor) -> list:
    """Feed every expired timer into *machine*; return the non-None decisions."""
    decisions = []
    for fired in governor.poll():
        decision = machine.handle_timer(fired)
        if decision is not None:
            decisions.append(decision)
    return decisions


def partial(text: str) -> Hypothesis:
    return Hypothesis.partial(text)


def final(text: str) -> Hypothesis:
    return Hypothesis.final(text)


# ---------------------------------------------------------------------------
# Listening: matching rules
# ---------------------------------------------------------------------------


class TestExactMatch:
    def test_partial_fires_action(self, machine, executor, decoder_reset):
        decision = machine.handle_hypothesis(partial("open browser"))
        assert decision.outcome == Outcome.ACTION
        assert decision.phrase == "open browser"
        assert decision.match.kind == MatchKind.EXACT
        assert decision.spawned is True
        executor.run.assert_called_once_with("xdg-open https://example.com")
        decoder_reset.assert_called_once()
        assert machine.state == DispatchState.IDLE
        assert machine.session is None

    def test_final_fires_action(self, machine, executor):
        decision = machine.handle_hypothesis(final("lock screen"))
        assert decision.outcome == Outcome.ACTION
        executor.run.assert_called_once_with("loginctl lock-session")

    def test_empty_action_is_ignored(self, machine, executor):
        decision = machine.handle_hypothesis(partial("do nothing"))
        assert decision.outcome == Outcome.IGNORED
        executor.run.assert_not_called()


class TestIncrementalUtterance:
    def test_growing_partials_fire_once(self, machine, executor, modes):
        outcomes = [
            machine.handle_hypothesis(partial(text)).outcome
            for text in ("o", "open", "open br", "open browser")
        ]
        assert outcomes == [Outcome.HOLD, Outcome.HOLD, Outcome.HOLD, Outcome.ACTION]
        executor.run.assert_called_once_with("xdg-open https://example.com")
        assert machine.state == DispatchState.IDLE
        assert modes.mode == Mode.LISTENING

    def test_trailing_final_does_not_fire_again(self, machine, executor):
        for text in ("o", "open", "open browser"):
            machine.handle_hypothesis(partial(text))
        machine.handle_hypothesis(final("open browser"))
        executor.run.assert_called_once()


class TestFuzzyMatch:
    def test_close_misrecognition_fires(self, machine, executor):
        decision = machine.handle_hypothesis(partial("open browzer"))
        assert decision.outcome == Outcome.ACTION
        assert decision.phrase == "open browser"
        assert decision.match.kind == MatchKind.FUZZY
        executor.run.assert_called_once_with("xdg-open https://example.com")

    def test_fuzzy_winner_still_being_spoken_holds(self, machine, executor):
        decision = machine.handle_hypothesis(partial("open br"))
        assert decision.outcome == Outcome.HOLD
        executor.run.assert_not_called()


class TestPrefixHold:
    def test_prefix_holds(self, machine, modes, governor):
        decision = machine.handle_hypothesis(partial("open"))
        assert decision.outcome == Outcome.HOLD
        assert decision.match.kind == MatchKind.PREFIX
        assert machine.state == DispatchState.PREFIX_HOLDING
        assert modes.mode == Mode.PREFIX_WAIT
        assert governor.is_armed(TimerKind.PREFIX_HOLD)
        assert not modes.consume_restart()

    def test_completion_during_hold_fires(self, machine, modes, executor):
        machine.handle_hypothesis(partial("open"))
        decision = machine.handle_hypothesis(partial("open browser"))
        assert decision.outcome == Outcome.ACTION
        executor.run.assert_called_once()
        assert modes.mode == Mode.LISTENING

    def test_hold_expiry_resets(self, machine, governor, clock, executor, decoder_reset):
        machine.handle_hypothesis(partial("open"))
        clock.advance(0.6)
        decisions = fire_expired(machine, governor)
        assert [d.outcome for d in decisions] == [Outcome.RESET]
        assert decisions[0].text == "open"
        assert machine.state == DispatchState.IDLE
        assert not governor.is_armed(TimerKind.SILENCE_RESET)
        decoder_reset.assert_called_once()
        executor.run.assert_not_called()

    def test_growing_prefix_rearms_hold(self, machine, governor, clock):
        machine.handle_hypothesis(partial("open"))
        started = machine.session.prefix_hold_started_at
        clock.advance(0.4)
        assert machine.handle_hypothesis(partial("open b")).outcome == Outcome.HOLD
        clock.advance(0.3)
        assert fire_expired(machine, governor) == []
        assert machine.state == DispatchState.PREFIX_HOLDING
        assert machine.session.prefix_hold_started_at == started

    def test_final_prefix_is_a_miss(self, machine, executor):
        decision = machine.handle_hypothesis(final("open"))
        assert decision.outcome == Outcome.MISS
        executor.run.assert_not_called()

    def test_final_close_to_phrase_fires(self, machine, executor):
        decision = machine.handle_hypothesis(final("open browse"))
        assert decision.outcome == Outcome.ACTION
        assert decision.phrase == "open browser"
        assert decision.match.kind == MatchKind.FUZZY
        executor.run.assert_called_once_with("xdg-open https://example.com")

    def test_partial_close_to_phrase_still_holds(self, machine, executor):
        decision = machine.handle_hypothesis(partial("open browse"))
        assert decision.outcome == Outcome.HOLD
        executor.run.assert_not_called()


class TestSilenceReset:
    @pytest.fixture
    def slow_hold(self, command_table, executor, clock, decoder_reset, durations):
        durations[TimerKind.PREFIX_HOLD] = 10.0
        governor = TimeoutGovernor(clock=clock, durations=durations)
        modes = ModeController(command_table, governor)
        machine = DispatchStateMachine(
            command_table, executor, governor, modes, decoder_reset=decoder_reset
        )
        return machine, governor

    def test_silence_ends_a_stalled_hold(self, slow_hold, clock):
        machine, governor = slow_hold
        machine.handle_hypothesis(partial("lock"))
        clock.advance(1.3)
        decisions = fire_expired(machine, governor)
        assert [d.outcome for d in decisions] == [Outcome.RESET]
        assert not governor.is_armed(TimerKind.PREFIX_HOLD)

    def test_silence_timer_ignored_when_idle(self, machine, governor, clock):
        governor.arm(TimerKind.SILENCE_RESET)
        clock.advance(2.0)
        assert fire_expired(machine, governor) == []


class TestMiss:
    def test_unknown_partial_resets(self, machine, executor, decoder_reset):
        decision = machine.handle_hypothesis(partial("zzz"))
        assert decision.outcome == Outcome.MISS
        assert decision.match.score == 0.0
        decoder_reset.assert_called_once()
        executor.run.assert_not_called()

    def test_empty_final_resets(self, machine):
        decision = machine.handle_hypothesis(final(""))
        assert decision.outcome == Outcome.RESET

    def test_empty_partial_is_not_an_event(self, machine):
        assert machine.handle_hypothesis(partial("")) is None
        assert machine.state == DispatchState.IDLE


# ---------------------------------------------------------------------------
# Idempotence and cooldown
# ---------------------------------------------------------------------------


class TestRepeats:
    def test_repeated_partial_is_dropped(self, machine):
        machine.handle_hypothesis(partial("open"))
        assert machine.handle_hypothesis(partial("open")) is None

    def test_repeated_partial_after_reset_is_dropped(self, machine, executor):
        machine.handle_hypothesis(partial("open browser"))
        assert machine.handle_hypothesis(partial("open browser")) is None
        executor.run.assert_called_once()

    def test_final_after_partial_hits_cooldown(self, machine, executor):
        machine.handle_hypothesis(partial("open browser"))
        decision = machine.handle_hypothesis(final("open browser"))
        assert decision.outcome == Outcome.COOLDOWN
        executor.run.assert_called_once()

    def test_cooldown_expires(self, machine, governor, clock, executor):
        machine.handle_hypothesis(partial("open browser"))
        machine.handle_hypothesis(final("open browser"))
        clock.advance(1.1)
        fire_expired(machine, governor)
        decision = machine.handle_hypothesis(partial("open browser"))
        assert decision.outcome == Outcome.ACTION
        assert executor.run.call_count == 2

    def test_cooldown_is_per_phrase(self, machine, executor):
        machine.handle_hypothesis(partial("open browser"))
        decision = machine.handle_hypothesis(partial("lock screen"))
        assert decision.outcome == Outcome.ACTION
        assert executor.run.call_count == 2


# ---------------------------------------------------------------------------
# Mode toggling
# ---------------------------------------------------------------------------


class TestToggle:
    def test_voice_toggle_enters_dictation(self, machine, modes, executor):
        decision = machine.handle_hypothesis(partial("type on"))
        assert decision.outcome == Outcome.TOGGLE
        assert decision.phrase == "type on"
        assert modes.mode == Mode.DICTATION
        executor.run.assert_not_called()

    def test_key_toggle_enters_dictation(self, machine, modes):
        decision = machine.handle_key(_TOGGLE_KEY)
        assert decision.outcome == Outcome.TOGGLE
        assert modes.mode == Mode.DICTATION

    def test_voice_toggle_in_same_cycle_as_key_is_ignored(self, machine, modes):
        machine.handle_key(_TOGGLE_KEY)
        decision = machine.handle_hypothesis(partial("type on"))
        assert decision.outcome == Outcome.IGNORED
        assert modes.mode == Mode.DICTATION

    def test_voice_toggle_returns_to_listening(self, machine, modes):
        machine.handle_key(_TOGGLE_KEY)
        modes.begin_cycle()
        decision = machine.handle_hypothesis(partial("type on"))
        assert decision.outcome == Outcome.TOGGLE
        assert modes.mode == Mode.LISTENING

    def test_exit_key_leaves_dictation(self, machine, modes):
        machine.handle_key(_TOGGLE_KEY)
        decision = machine.handle_key(KeyEvent(key="esc"))
        assert decision.outcome == Outcome.TOGGLE
        assert modes.mode == Mode.LISTENING

    def test_exit_key_ignored_while_listening(self, machine, modes):
        assert machine.handle_key(KeyEvent(key="esc")) is None
        assert modes.mode == Mode.LISTENING

    def test_other_keys_ignored(self, machine):
        assert machine.handle_key(KeyEvent(key="t", ctrl=True)) is None

    def test_dictation_idle_timeout(self, machine, modes, governor, clock):
        machine.handle_key(_TOGGLE_KEY)
        clock.advance(8.1)
        decisions = fire_expired(machine, governor)
        assert [d.outcome for d in decisions] == [Outcome.TOGGLE]
        assert modes.mode == Mode.LISTENING


# ---------------------------------------------------------------------------
# Dictation
# ---------------------------------------------------------------------------


class TestDictation:
    @pytest.fixture(autouse=True)
    def _dictating(self, machine, modes):
        machine.handle_key(_TOGGLE_KEY)
        modes.begin_cycle()

    def test_partials_are_typed_progressively(self, machine, executor):
        first = machine.handle_hypothesis(partial("hello"))
        second = machine.handle_hypothesis(partial("hello world"))
        assert first.outcome == second.outcome == Outcome.TYPED
        assert [c.args[0] for c in executor.type_text.call_args_list] == [
            "hello",
            " world",
        ]
        executor.run.assert_not_called()

    def test_commands_are_not_run_while_dictating(self, machine, executor):
        decision = machine.handle_hypothesis(partial("open browser"))
        assert decision.outcome == Outcome.TYPED
        executor.type_text.assert_called_once_with("open browser")
        executor.run.assert_not_called()

    def test_final_then_next_utterance(self, machine, executor, decoder_reset):
        machine.handle_hypothesis(partial("hello"))
        assert machine.handle_hypothesis(final("hello")).outcome == Outcome.IGNORED
        decoder_reset.assert_called()
        machine.handle_hypothesis(partial("again"))
        executor.type_text.assert_called_with(" again")

    def test_toggle_prefix_is_withheld(self, machine, executor):
        decision = machine.handle_hypothesis(partial("type"))
        assert decision.outcome == Outcome.IGNORED
        executor.type_text.assert_not_called()

    def test_activity_pushes_back_idle_timeout(self, machine, modes, governor, clock):
        clock.advance(6.0)
        machine.handle_hypothesis(partial("hello"))
        clock.advance(6.0)
        assert fire_expired(machine, governor) == []
        assert modes.mode == Mode.DICTATION

    def test_type_failure_is_reported(self, machine, executor):
        executor.type_text.side_effect = ActionSpawnError("type", OSError("gone"))
        decision = machine.handle_hypothesis(partial("hello"))
        assert decision.outcome == Outcome.TYPED
        assert decision.spawned is False


# ---------------------------------------------------------------------------
# Search capture
# ---------------------------------------------------------------------------


class TestCapture:
    def test_capture_runs_action_with_quoted_text(
        self, machine, modes, governor, clock, executor
    ):
        started = machine.handle_hypothesis(partial("search web"))
        assert started.outcome == Outcome.CAPTURE_STARTED
        assert modes.mode == Mode.SEARCH_CAPTURE
        executor.run.assert_not_called()

        assert machine.handle_hypothesis(partial("cute")).outcome == Outcome.CAPTURED
        machine.handle_hypothesis(final("cute cats"))

        clock.advance(5.1)
        decisions = fire_expired(machine, governor)
        assert [d.outcome for d in decisions] == [Outcome.CAPTURE_FINISHED]
        executor.run.assert_called_once_with(
            "xdg-open https://duckduckgo.com/?q=cute+cats"
        )
        assert decisions[0].text == "cute cats"
        assert modes.mode == Mode.LISTENING

    def test_empty_capture_does_not_run(self, machine, governor, clock, executor):
        machine.handle_hypothesis(partial("search web"))
        clock.advance(5.1)
        decisions = fire_expired(machine, governor)
        assert decisions[0].outcome == Outcome.CAPTURE_FINISHED
        assert decisions[0].text == ""
        executor.run.assert_not_called()

    def test_key_toggle_cancels_capture(self, machine, modes, governor, clock, executor):
        machine.handle_hypothesis(partial("search web"))
        machine.handle_hypothesis(partial("cats"))
        assert machine.handle_key(_TOGGLE_KEY).outcome == Outcome.TOGGLE
        assert modes.mode == Mode.LISTENING
        clock.advance(5.1)
        fire_expired(machine, governor)
        executor.run.assert_not_called()

    def test_exit_key_cancels_capture(self, machine, modes):
        machine.handle_hypothesis(partial("search web"))
        assert machine.handle_key(KeyEvent(key="esc")).outcome == Outcome.TOGGLE
        assert modes.capture is None


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestSpawnFailure:
    def test_failed_launch_keeps_listening(self, machine, executor):
        executor.run.side_effect = ActionSpawnError("xdg-open", OSError("nope"))
        decision = machine.handle_hypothesis(partial("open browser"))
        assert decision.outcome == Outcome.ACTION
        assert decision.spawned is False
        assert machine.state == DispatchState.IDLE

        executor.run.side_effect = None
        decision = machine.handle_hypothesis(partial("lock screen"))
        assert decision.spawned is True


class TestLifecycle:
    def test_begin_pass(self, machine, clock):
        session = machine.begin_pass()
        assert machine.state == DispatchState.AWAITING
        assert session.started_at == clock.now
        assert session.mode == Mode.LISTENING

    def test_set_decoder_reset(self, machine, decoder_reset):
        other = MagicMock()
        machine.set_decoder_reset(other)
        machine.reset("test")
        other.assert_called_once()
        decoder_reset.assert_not_called()

    def test_malformed_hotkey_is_a_config_error(self, command_table, executor, governor, modes):
        with pytest.raises(ConfigError, match="hot-key"):
            DispatchStateMachine(
                command_table, executor, governor, modes, toggle_hotkey="super+t"
            )


class TestFillPlaceholder:
    def test_url_text_is_url_encoded(self):
        command = fill_placeholder("xdg-open https://duckduckgo.com/?q={text}", "cats & dogs")
        assert command == "xdg-open https://duckduckgo.com/?q=cats+%26+dogs"

    def test_plain_argument_is_shell_quoted(self):
        command = fill_placeholder("notify-send {text}", "it's done")
        assert command == "notify-send 'it'\"'\"'s done'"

    def test_every_occurrence_is_replaced(self):
        command = fill_placeholder("echo {text} https://x.org/?q={text}", "a b")
        assert command == "echo 'a b' https://x.org/?q=a+b"
