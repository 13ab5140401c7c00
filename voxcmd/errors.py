"""Exception hierarchy for voxcmd.

Only ``ConfigError`` and ``ModelLoadError`` are fatal; they are raised at
startup and reported by the CLI. Every other error is logged by the engine
and the dispatcher keeps listening.
"""


class VoxcmdError(Exception):
    """Base class for all voxcmd errors."""


class ConfigError(VoxcmdError):
    """The commands file is missing, unreadable, or malformed."""


class ModelLoadError(VoxcmdError):
    """The recognition model could not be loaded."""


class AudioSourceError(VoxcmdError):
    """The audio capture subprocess could not be started."""


class DecodeError(VoxcmdError):
    """The transcriber rejected a chunk of samples."""


class ActionSpawnError(VoxcmdError):
    """A shell action or a typing command failed to launch."""

    def __init__(self, command: str, cause: BaseException | None = None) -> None:
        self.command = command
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to spawn {command!r}{detail}")
