"""Shared data models for the opening trainer.

MoveNode and SessionState are the shared contract between the move tree,
the session store, the MCP server and the TUI.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

ROOT_KEY = 0


class Orientation(str, Enum):
    WHITE = "white"
    BLACK = "black"


class AppMode(str, Enum):
    FREE_PLAY = "free_play"
    LEARNING = "learning"


class LearnOutcome(str, Enum):
    CONTINUE = "continue"
    INCORRECT = "incorrect"
    END = "end"


class TurnState(str, Enum):
    IDLE = "idle"
    PLAYER_MOVED = "player_moved"
    AUTO_REPLYING = "auto_replying"
    REVERTING = "reverting"
    ENDING = "ending"


@dataclass(frozen=True)
class MoveNode:
    """A node in the opening tree.

    ``key`` addresses the node inside a MoveTree arena and is None only for
    a provisional node that has not been appended yet. ``id`` is the
    persisted identifier; it is empty for the root and provisional nodes.
    """

    key: int | None
    id: str
    move: str
    piece: str
    parent: int | None = None
    children: tuple[int, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.key == ROOT_KEY

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def is_provisional(self) -> bool:
        return not self.id and not self.is_root


@dataclass(frozen=True)
class SessionState:
    """Value held by the session store; replaced on every dispatch."""

    cursor: int = ROOT_KEY
    orientation: Orientation = Orientation.WHITE
    mode: AppMode = AppMode.LEARNING


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a player move against the cursor."""

    outcome: LearnOutcome
    matched: MoveNode | None = None
    auto_reply: MoveNode | None = None


@dataclass
class MoveResult:
    """Tagged result of a rules-engine call (ok or rejected)."""

    ok: bool
    san: str = ""
    uci: str = ""
    piece: str = ""
    fen: str = ""
    error: str | None = None
