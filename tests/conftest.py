"""Shared test fixtures.

Usage:
    uv run pytest tests/

Fixtures:
    e4_e5_tree        - Book with the single line 1.e4 e5 (e5 is a leaf).
    book_tree         - Small repertoire with branching lines.
    fast_config       - TrainerConfig with zero delays and a tmp data dir.
    enable_validation - Sets OPENING_TRAINER_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))

from opening_trainer.config import TrainerConfig  # noqa: E402
from opening_trainer.models import Orientation  # noqa: E402
from opening_trainer.move_tree import MoveTree  # noqa: E402

REPERTOIRE_LINES = [
    ["e4", "e5", "Nf3", "Nc6", "Bb5"],
    ["e4", "e5", "Nf3", "Nf6"],
    ["e4", "c5", "Nf3", "d6"],
    ["d4", "d5", "c4"],
]


class RecordingBoard:
    """Board adapter that remembers every position it was shown."""

    def __init__(self) -> None:
        self.positions: list[tuple[str, Orientation]] = []

    def show_position(self, fen: str, orientation: Orientation) -> None:
        self.positions.append((fen, orientation))


@pytest.fixture()
def e4_e5_tree() -> MoveTree:
    tree = MoveTree()
    tree.add_line(["e4", "e5"])
    return tree


@pytest.fixture()
def book_tree() -> MoveTree:
    tree = MoveTree()
    for line in REPERTOIRE_LINES:
        tree.add_line(line)
    return tree


@pytest.fixture()
def fast_config(tmp_path) -> TrainerConfig:
    return TrainerConfig(
        auto_reply_delay=0.0, revert_delay=0.0, reset_delay=0.0, data_dir=tmp_path
    )


@pytest.fixture()
def recording_board() -> RecordingBoard:
    return RecordingBoard()


@pytest.fixture(autouse=True)
def enable_validation():
    """Set OPENING_TRAINER_VALIDATE=1 for the test.

    Restores the original env var value after the test.
    """
    original = os.environ.get("OPENING_TRAINER_VALIDATE")
    os.environ["OPENING_TRAINER_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("OPENING_TRAINER_VALIDATE", None)
    else:
        os.environ["OPENING_TRAINER_VALIDATE"] = original
