"""Command-line interface for voxcmd.

Provides ``voxcmd run`` and ``voxcmd check``.  The entry point is
registered via ``pyproject.toml`` as ``voxcmd = "voxcmd.cli:cli"``.
"""

import logging
from pathlib import Path

import click

from voxcmd.config import COMMANDS_PATH, LOG_LEVEL, MODEL_PATH, load_commands
from voxcmd.errors import ConfigError, ModelLoadError

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool, log_file: Path | None) -> None:
    """Configure the root logger for the console and an optional file."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else LOG_LEVEL)
    formatter = logging.Formatter(_LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(formatter)
        root.addHandler(handler)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """voxcmd -- Run shell commands by voice."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--commands",
    "commands_path",
    default=None,
    type=click.Path(path_type=Path),
    help=f"Commands TOML file (default: {COMMANDS_PATH})",
)
@click.option(
    "--model",
    "model_path",
    default=None,
    type=click.Path(path_type=Path),
    help=f"Vosk model directory (default: {MODEL_PATH})",
)
@click.option("-v", "--verbose", is_flag=True, help="Log matching decisions")
@click.option(
    "--log-file", default=None, type=click.Path(path_type=Path), help="Also log to this file"
)
def run(
    commands_path: Path | None,
    model_path: Path | None,
    verbose: bool,
    log_file: Path | None,
) -> None:
    """Listen for voice commands until interrupted."""
    _setup_logging(verbose, log_file)

    from voxcmd.engine import create_engine

    try:
        engine = create_engine(commands_path, model_path)
    except (ConfigError, ModelLoadError) as exc:
        click.echo(click.style(str(exc), fg="red"), err=True)
        raise SystemExit(1)

    try:
        engine.run()
    except KeyboardInterrupt:
        click.echo("Interrupted.")


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--commands",
    "commands_path",
    default=None,
    type=click.Path(path_type=Path),
    help=f"Commands TOML file (default: {COMMANDS_PATH})",
)
def check(commands_path: Path | None) -> None:
    """Validate the commands file and list the recognized phrases."""
    from voxcmd.dispatch.command_table import CommandTable

    try:
        table = CommandTable(load_commands(commands_path).commands)
    except ConfigError as exc:
        click.echo(click.style(str(exc), fg="red"), err=True)
        raise SystemExit(1)

    click.echo(click.style(f"{len(table)} commands loaded.", fg="green"))
    for phrase, action in sorted(table.actions.items()):
        marker = " (captures text)" if table.is_capture_action(action) else ""
        click.echo(f"  {phrase!r} -> {action or '<no action>'}{marker}")
    click.echo(f"  {table.toggle_phrase!r} -> toggle typing mode")
