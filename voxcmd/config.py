"""Configuration constants and helpers for voxcmd."""

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, ValidationError

from voxcmd.errors import ConfigError

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    """Return env var *name* as a float, or *default* if unset or malformed."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    """Return env var *name* as an int, or *default* if unset or malformed."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# --- Paths ---

MODEL_PATH: Path = Path(
    os.environ.get("VOXCMD_MODEL_PATH", "model/vosk-model-small-en-us-0.15")
)
COMMANDS_PATH: Path = Path(
    os.environ.get("VOXCMD_COMMANDS_PATH", "config/commands.toml")
)


# --- Audio pipeline configuration ---

AUDIO_SAMPLE_RATE: int = _env_int("VOXCMD_AUDIO_SAMPLE_RATE", 16000)
AUDIO_READ_SIZE: int = _env_int("VOXCMD_AUDIO_READ_SIZE", 4096)  # bytes per read
AUDIO_POLL_TIMEOUT: float = _env_float("VOXCMD_AUDIO_POLL_TIMEOUT", 0.02)
AUDIO_RESTART_BACKOFF: float = _env_float("VOXCMD_AUDIO_RESTART_BACKOFF", 1.0)
AUDIO_BACKEND: str = os.environ.get("VOXCMD_AUDIO_BACKEND", "rec")  # or "sounddevice"
AUDIO_COMMAND: list[str] = [
    "rec", "-q",
    "-r", str(AUDIO_SAMPLE_RATE),
    "-c", "1",
    "-b", "16",
    "-e", "signed-integer",
    "-t", "raw",
    "-",
]


# --- Keyboard configuration ---

KEY_POLL_TIMEOUT: float = _env_float("VOXCMD_KEY_POLL_TIMEOUT", 0.005)
TOGGLE_HOTKEY: str = os.environ.get("VOXCMD_TOGGLE_HOTKEY", "ctrl+alt+t")
EXIT_KEY: str = os.environ.get("VOXCMD_EXIT_KEY", "esc")


# --- Timing budgets (seconds) ---

SILENCE_RESET_WINDOW: float = _env_float("VOXCMD_SILENCE_RESET_WINDOW", 1.2)
PREFIX_HOLD_WINDOW: float = _env_float("VOXCMD_PREFIX_HOLD_WINDOW", 0.5)
DICTATION_IDLE_TIMEOUT: float = _env_float("VOXCMD_DICTATION_IDLE_TIMEOUT", 8.0)
CAPTURE_WINDOW: float = _env_float("VOXCMD_CAPTURE_WINDOW", 5.0)
MATCH_COOLDOWN: float = _env_float("VOXCMD_MATCH_COOLDOWN", 1.0)


# --- Matching configuration ---

FUZZY_THRESHOLD: float = _env_float("VOXCMD_FUZZY_THRESHOLD", 0.91)
TOGGLE_PHRASE: str = os.environ.get("VOXCMD_TOGGLE_PHRASE", "type on")
CAPTURE_PLACEHOLDER: str = "{text}"


# --- Dictation configuration ---

TYPING_STRATEGY: str = os.environ.get("VOXCMD_TYPING_STRATEGY", "progressive")
TYPE_METHOD: str = os.environ.get("VOXCMD_TYPE_METHOD", "")  # "" = auto-detect


# --- Logging ---

LOG_LEVEL: str = os.environ.get("VOXCMD_LOG_LEVEL", "INFO").upper()
if LOG_LEVEL not in logging.getLevelNamesMapping():
    LOG_LEVEL = "INFO"


# --- Command file ---


class CommandConfig(BaseModel):
    """Parsed contents of the commands TOML file."""

    commands: dict[str, str]


def load_commands(path: Path | str | None = None) -> CommandConfig:
    """Read and validate the commands file.

    Raises ``ConfigError`` naming the path if the file cannot be read,
    is not valid TOML, or lacks a ``[commands]`` table of strings.
    """
    path = Path(path) if path is not None else COMMANDS_PATH
    try:
        with path.open("rb") as fh:
            raw = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read commands file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Malformed TOML in {path}: {exc}") from exc

    try:
        config = CommandConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid commands file {path}: {exc}") from exc

    logger.debug("Loaded %d commands from %s", len(config.commands), path)
    return config
