"""Runtime configuration for the opening trainer.

Defaults live here as module constants; each can be overridden with an
environment variable so the MCP server and tests can tune the turn rhythm
without code changes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_DATA_DIR = _PROJECT_ROOT / "data"

# Delays between the player's move and the trainer's visible reaction
_AUTO_REPLY_MS = 200
_REVERT_MS = 600
_RESET_MS = 1000

TREE_FILENAME = "opening_tree.json"
SESSION_FILENAME = "current_session.json"


def _ms_from_env(name: str, default: int) -> float:
    """Read a millisecond delay from the environment, in seconds."""
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default / 1000
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default / 1000
    if value < 0:
        logger.warning("Ignoring %s=%r: negative delay", name, raw)
        return default / 1000
    return value / 1000


@dataclass
class TrainerConfig:
    """Delays (seconds) and file locations for one trainer process."""

    auto_reply_delay: float = _AUTO_REPLY_MS / 1000
    revert_delay: float = _REVERT_MS / 1000
    reset_delay: float = _RESET_MS / 1000
    data_dir: Path = _DEFAULT_DATA_DIR

    @property
    def tree_path(self) -> Path:
        return self.data_dir / TREE_FILENAME

    @property
    def session_path(self) -> Path:
        return self.data_dir / SESSION_FILENAME

    @classmethod
    def from_env(cls) -> "TrainerConfig":
        """Build a config from OPENING_TRAINER_* environment variables."""
        data_dir = os.environ.get("OPENING_TRAINER_DATA_DIR")
        return cls(
            auto_reply_delay=_ms_from_env("OPENING_TRAINER_AUTO_REPLY_MS", _AUTO_REPLY_MS),
            revert_delay=_ms_from_env("OPENING_TRAINER_REVERT_MS", _REVERT_MS),
            reset_delay=_ms_from_env("OPENING_TRAINER_RESET_MS", _RESET_MS),
            data_dir=Path(data_dir) if data_dir else _DEFAULT_DATA_DIR,
        )
