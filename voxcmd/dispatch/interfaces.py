"""Abstract interfaces for the collaborators of the dispatch core.

The state machine and the engine only talk to these. Concrete adapters
live in ``voxcmd.io``; tests substitute fakes.
"""

from abc import ABC, abstractmethod

from voxcmd.dispatch.types import DecodeState, KeyEvent


class Transcriber(ABC):
    """A streaming speech recognizer for one decode pass.

    Grammar-constrained instances only recognize the phrases they were
    built with; unconstrained instances recognize open vocabulary.
    """

    @abstractmethod
    def accept(self, samples) -> DecodeState:
        """Feed signed 16-bit mono samples. Never raises; failure is FAILED."""

    @abstractmethod
    def partial(self) -> str:
        """Current provisional transcript."""

    @abstractmethod
    def result(self) -> str:
        """Transcript of the segment that was just finalized."""

    @abstractmethod
    def reset(self) -> None:
        """Discard all internal decode state."""


class AudioFrameSource(ABC):
    """A live stream of raw little-endian 16-bit PCM bytes."""

    @abstractmethod
    def start(self) -> None:
        """Start capturing. Raises ``AudioSourceError`` on failure."""

    @abstractmethod
    def read(self, timeout: float) -> bytes | None:
        """Return available bytes, None on timeout, or ``b""`` at end of stream."""

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing and release the stream."""


class KeyEventSource(ABC):
    """Discrete key presses with modifier flags."""

    @abstractmethod
    def start(self) -> None:
        """Begin collecting key events."""

    @abstractmethod
    def poll(self, timeout: float) -> KeyEvent | None:
        """Return the next key event, or None if none arrives within *timeout*."""

    @abstractmethod
    def stop(self) -> None:
        """Stop collecting key events."""


class ActionExecutor(ABC):
    """Launches actions without waiting for them to finish."""

    @abstractmethod
    def run(self, command: str) -> None:
        """Spawn a shell command line. Raises ``ActionSpawnError`` on failure."""

    @abstractmethod
    def type_text(self, text: str) -> None:
        """Type literal text into the focused window. Raises ``ActionSpawnError``."""
