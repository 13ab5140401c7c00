"""voxcmd: voice-triggered command dispatcher."""

__version__ = "0.1.0"
