"""Keyboard events from a pynput listener, polled with a timeout."""

import logging
import queue

from voxcmd.dispatch.interfaces import KeyEventSource
from voxcmd.dispatch.types import KeyEvent

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 64


def _modifier_of(key) -> str | None:
    """Return "ctrl", "alt" or "shift" for a pynput modifier key."""
    name = getattr(key, "name", None)
    if not name:
        return None
    for modifier in ("ctrl", "alt", "shift"):
        if name == modifier or name.startswith(modifier + "_"):
            return modifier
    return None


def _key_name(key) -> str | None:
    """Lower-case name of a pynput key: its character, or e.g. ``esc``."""
    char = getattr(key, "char", None)
    if char:
        # With ctrl held some backends report the control character.
        if len(char) == 1 and ord(char) < 32:
            char = chr(ord(char) + 96)
        return char.lower()
    name = getattr(key, "name", None)
    return name.lower() if name else None


class PynputKeySource(KeyEventSource):
    """Collects key presses on pynput's listener thread.

    The listener only enqueues; the dispatch loop consumes events one at a
    time through ``poll()``, so all handling stays on the loop's thread.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[KeyEvent] = queue.Queue(maxsize=_QUEUE_SIZE)
        self._modifiers: set[str] = set()
        self._listener = None

    def start(self) -> None:
        from pynput import keyboard

        self._listener = keyboard.Listener(
            on_press=self._on_press, on_release=self._on_release
        )
        self._listener.start()
        logger.info("Keyboard listener started")

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        self._modifiers.clear()

    def poll(self, timeout: float) -> KeyEvent | None:
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _on_press(self, key) -> None:
        modifier = _modifier_of(key)
        if modifier is not None:
            self._modifiers.add(modifier)
            return
        name = _key_name(key)
        if name is None:
            return
        event = KeyEvent(
            key=name,
            ctrl="ctrl" in self._modifiers,
            alt="alt" in self._modifiers,
            shift="shift" in self._modifiers,
        )
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.debug("Key queue full, dropping %s", name)

    def _on_release(self, key) -> None:
        modifier = _modifier_of(key)
        if modifier is not None:
            self._modifiers.discard(modifier)
