"""Immutable mapping from spoken trigger phrases to shell actions."""

import logging
from collections.abc import Mapping
from types import MappingProxyType

from voxcmd.config import CAPTURE_PLACEHOLDER, TOGGLE_PHRASE
from voxcmd.errors import ConfigError
from voxcmd.dispatch.types import normalize_text

logger = logging.getLogger(__name__)


class CommandTable:
    """Normalized phrase -> action string, plus the reserved toggle phrase.

    Built once at startup. Two raw keys that normalize to the same phrase
    are accepted only if they map to the same action. The toggle phrase is
    part of the grammar but never maps to a user action.
    """

    def __init__(
        self,
        commands: Mapping[str, str],
        toggle_phrase: str = TOGGLE_PHRASE,
    ) -> None:
        self._toggle = normalize_text(toggle_phrase)
        if not self._toggle:
            raise ConfigError("Toggle phrase must not be empty")

        table: dict[str, str] = {}
        for raw_phrase, action in commands.items():
            phrase = normalize_text(raw_phrase)
            if not phrase:
                raise ConfigError(f"Empty trigger phrase for action {action!r}")
            if phrase == self._toggle:
                raise ConfigError(
                    f"Command {raw_phrase!r} collides with the toggle phrase "
                    f"{self._toggle!r}"
                )
            existing = table.get(phrase)
            if existing is not None and existing != action:
                raise ConfigError(
                    f"Phrase {phrase!r} is mapped to two actions: "
                    f"{existing!r} and {action!r}"
                )
            table[phrase] = action

        self._actions: Mapping[str, str] = MappingProxyType(table)
        self._phrases: frozenset[str] = frozenset(table) | {self._toggle}
        logger.debug(
            "Command table built: %d commands, toggle=%r", len(table), self._toggle
        )

    @property
    def toggle_phrase(self) -> str:
        return self._toggle

    @property
    def actions(self) -> Mapping[str, str]:
        """Read-only view of phrase -> action (toggle phrase excluded)."""
        return self._actions

    def __len__(self) -> int:
        return len(self._actions)

    def phrases(self) -> frozenset[str]:
        """All recognizable phrases, toggle included (the grammar)."""
        return self._phrases

    def is_toggle(self, text: str) -> bool:
        return normalize_text(text) == self._toggle

    def lookup_exact(self, text: str) -> str | None:
        """Return the action mapped to *text*, or None."""
        return self._actions.get(normalize_text(text))

    def action_for(self, phrase: str) -> str:
        """Return the action of a known command phrase; KeyError otherwise."""
        return self._actions[normalize_text(phrase)]

    def has_prefix(self, text: str) -> bool:
        """True if *text* is a strict prefix of at least one known phrase."""
        text = normalize_text(text)
        if not text:
            return False
        return any(p != text and p.startswith(text) for p in self._phrases)

    @staticmethod
    def is_capture_action(action: str) -> bool:
        """True if *action* needs free-text input substituted into it."""
        return CAPTURE_PLACEHOLDER in action
