"""Vosk-backed transcriber with optional grammar restriction."""

import json
import logging
from pathlib import Path

import numpy as np
import vosk

from voxcmd.config import AUDIO_SAMPLE_RATE
from voxcmd.dispatch.interfaces import Transcriber
from voxcmd.dispatch.types import DecodeState
from voxcmd.errors import ModelLoadError

logger = logging.getLogger(__name__)


def load_model(path: Path | str) -> vosk.Model:
    """Load a Vosk model directory. Raises ``ModelLoadError`` on failure."""
    path = Path(path)
    if not path.is_dir():
        raise ModelLoadError(f"Model directory not found: {path}")
    vosk.SetLogLevel(-1)
    try:
        model = vosk.Model(str(path))
    except Exception as exc:
        raise ModelLoadError(f"Failed to load model from {path}: {exc}") from exc
    logger.info("Recognition model loaded from %s", path)
    return model


class VoskTranscriber(Transcriber):
    """Wraps a ``KaldiRecognizer`` for a single decode pass.

    With a grammar the recognizer only produces the listed phrases, which
    is what keeps command matching accurate. Without one it recognizes
    open vocabulary for dictation.
    """

    def __init__(
        self,
        model: vosk.Model,
        sample_rate: int = AUDIO_SAMPLE_RATE,
        grammar: list[str] | None = None,
    ) -> None:
        if grammar is None:
            self._recognizer = vosk.KaldiRecognizer(model, sample_rate)
        else:
            self._recognizer = vosk.KaldiRecognizer(model, sample_rate, json.dumps(grammar))
        self._constrained = grammar is not None
        logger.debug(
            "Transcriber created (%s)",
            f"{len(grammar)} phrases" if grammar is not None else "open vocabulary",
        )

    @property
    def constrained(self) -> bool:
        return self._constrained

    def accept(self, samples: np.ndarray) -> DecodeState:
        data = np.asarray(samples, dtype="<i2").tobytes()
        try:
            finalized = self._recognizer.AcceptWaveform(data)
        except Exception:
            logger.warning("Transcriber rejected %d bytes", len(data), exc_info=True)
            return DecodeState.FAILED
        return DecodeState.FINALIZED if finalized else DecodeState.CONTINUING

    def partial(self) -> str:
        return json.loads(self._recognizer.PartialResult()).get("partial", "")

    def result(self) -> str:
        return json.loads(self._recognizer.Result()).get("text", "")

    def reset(self) -> None:
        self._recognizer.Reset()
