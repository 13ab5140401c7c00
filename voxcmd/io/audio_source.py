"""Microphone capture producing raw 16-bit mono PCM.

The default source runs ``rec`` as a subprocess; a sounddevice-based
source is available for systems without SoX.
"""

import logging
import os
import queue
import select
import subprocess

import numpy as np

from voxcmd.config import AUDIO_BACKEND, AUDIO_COMMAND, AUDIO_READ_SIZE, AUDIO_SAMPLE_RATE
from voxcmd.dispatch.interfaces import AudioFrameSource
from voxcmd.errors import AudioSourceError

logger = logging.getLogger(__name__)


class PcmDecoder:
    """Turns raw little-endian int16 bytes into sample arrays.

    Reads from a pipe can end mid-sample, so an odd trailing byte is
    carried over to the next chunk.
    """

    def __init__(self) -> None:
        self._carry: bytes = b""

    def decode(self, data: bytes) -> np.ndarray:
        data = self._carry + data
        usable = len(data) - (len(data) % 2)
        self._carry = data[usable:]
        return np.frombuffer(data[:usable], dtype="<i2")

    def reset(self) -> None:
        self._carry = b""


class RecAudioSource(AudioFrameSource):
    """Runs ``rec`` (SoX) and reads its stdout with a bounded wait.

    Owned by one decode pass: ``stop()`` terminates the process and closes
    the pipe, and a fresh ``start()`` spawns a new one.
    """

    def __init__(
        self,
        command: list[str] | None = None,
        read_size: int = AUDIO_READ_SIZE,
    ) -> None:
        self._command = list(command or AUDIO_COMMAND)
        self._read_size = read_size
        self._proc: subprocess.Popen | None = None

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self._command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            self._proc = None
            raise AudioSourceError(
                f"Could not start audio capture {self._command[0]!r}: {exc}"
            ) from exc
        logger.info("Audio capture started (pid %d)", self._proc.pid)

    def read(self, timeout: float) -> bytes | None:
        if self._proc is None or self._proc.stdout is None:
            return b""
        stdout = self._proc.stdout
        ready, _, _ = select.select([stdout], [], [], timeout)
        if not ready:
            return None
        return os.read(stdout.fileno(), self._read_size)

    def stop(self) -> None:
        proc = self._proc
        self._proc = None
        if proc is None:
            return
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                logger.warning("Audio capture did not exit, killing pid %d", proc.pid)
                proc.kill()
                proc.wait()
        if proc.stdout is not None:
            proc.stdout.close()
        logger.debug("Audio capture stopped")


class SoundDeviceAudioSource(AudioFrameSource):
    """Captures from the default input device with sounddevice.

    The PortAudio callback only enqueues raw blocks; ``read()`` drains
    them on the dispatch loop's thread.
    """

    def __init__(
        self,
        sample_rate: int = AUDIO_SAMPLE_RATE,
        read_size: int = AUDIO_READ_SIZE,
        max_blocks: int = 64,
    ) -> None:
        self._sample_rate = sample_rate
        self._blocksize = read_size // 2  # int16 frames per block
        self._blocks: queue.Queue[bytes] = queue.Queue(maxsize=max_blocks)
        self._stream = None
        self.dropped_blocks = 0

    def start(self) -> None:
        import sounddevice as sd

        try:
            self._stream = sd.RawInputStream(
                samplerate=self._sample_rate,
                channels=1,
                dtype="int16",
                blocksize=self._blocksize,
                callback=self._on_audio,
            )
            self._stream.start()
        except Exception as exc:
            self._stream = None
            raise AudioSourceError(f"Could not open input device: {exc}") from exc
        logger.info("Audio capture started (sounddevice, %d Hz)", self._sample_rate)

    def read(self, timeout: float) -> bytes | None:
        if self._stream is None:
            return b""
        try:
            return self._blocks.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.stop()
            stream.close()
        while not self._blocks.empty():
            self._blocks.get_nowait()
        logger.debug("Audio capture stopped")

    def _on_audio(self, indata, frames: int, time_info, status) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        try:
            self._blocks.put_nowait(bytes(indata))
        except queue.Full:
            self.dropped_blocks += 1


def create_audio_source(backend: str = AUDIO_BACKEND) -> AudioFrameSource:
    """Return the audio source selected by ``VOXCMD_AUDIO_BACKEND``."""
    if backend.lower() == "sounddevice":
        logger.info("Using sounddevice audio capture")
        return SoundDeviceAudioSource()
    return RecAudioSource()
