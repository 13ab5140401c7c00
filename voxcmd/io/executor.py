"""Fire-and-forget launching of shell actions and typed text."""

import logging
import os
import shutil
import subprocess

from voxcmd.config import TYPE_METHOD
from voxcmd.dispatch.interfaces import ActionExecutor
from voxcmd.errors import ActionSpawnError

logger = logging.getLogger(__name__)

_TYPE_COMMANDS: dict[str, list[str]] = {
    "xdotool": ["xdotool", "type", "--clearmodifiers", "--"],
    "wtype": ["wtype", "--"],
}


class ShellActionExecutor(ActionExecutor):
    """Spawns detached subprocesses and never waits for them.

    Typing uses xdotool on X11 or wtype on Wayland, detected at
    construction unless ``VOXCMD_TYPE_METHOD`` forces one.
    """

    def __init__(self, shell: str = "sh", type_method: str | None = None) -> None:
        self._shell = shell
        method = type_method if type_method is not None else TYPE_METHOD
        self._type_method = method or self._detect_type_method()
        if self._type_method:
            logger.info("Text typing method: %s", self._type_method)
        else:
            logger.warning("No text typing tool found; dictation will not type")

    @property
    def type_method(self) -> str | None:
        return self._type_method

    def run(self, command: str) -> None:
        self._spawn([self._shell, "-c", command], command)

    def type_text(self, text: str) -> None:
        argv = _TYPE_COMMANDS.get(self._type_method or "")
        if argv is None:
            raise ActionSpawnError(f"type {text!r}", RuntimeError("no typing tool available"))
        self._spawn(argv + [text], f"type {text!r}")

    @staticmethod
    def _spawn(argv: list[str], label: str) -> None:
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ActionSpawnError(label, exc) from exc
        logger.debug("Spawned %s (pid %d)", label, proc.pid)

    @staticmethod
    def _detect_type_method() -> str | None:
        """Pick a typing tool for the current display server."""
        if os.environ.get("WAYLAND_DISPLAY") and shutil.which("wtype"):
            return "wtype"
        if os.environ.get("DISPLAY") and shutil.which("xdotool"):
            return "xdotool"
        return None
