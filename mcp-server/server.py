"""MCP server for the opening trainer.

Exposes training sessions via FastMCP. Sessions are stored in memory keyed
by UUID and share one opening tree loaded from data/opening_tree.json.
Each board change and each tool response is synced to
data/current_session.json for TUI consumption.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from pathlib import Path

# Add project root and mcp-server dir to path for imports
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_MCP_SERVER_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(_PROJECT_ROOT))
sys.path.insert(0, str(_MCP_SERVER_DIR))

from mcp.server.fastmcp import FastMCP  # noqa: E402

from opening_trainer.config import TrainerConfig  # noqa: E402
from opening_trainer.models import (  # noqa: E402
    AppMode,
    Orientation,
    SessionState,
)
from opening_trainer.move_tree import InMemoryTreeLookup, MoveTree  # noqa: E402
from opening_trainer.session import SessionController  # noqa: E402
from opening_trainer.store import SessionStore, SetMode  # noqa: E402

from response_schemas import minify_session_state  # noqa: E402

logging.basicConfig(
    stream=sys.stderr,
    level=os.environ.get("OPENING_TRAINER_LOG_LEVEL", "WARNING").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("opening_trainer.server")

mcp = FastMCP("opening-trainer")

_config = TrainerConfig.from_env()

# Shared book tree; sessions keep the tree they were created with
_tree = MoveTree.load(_config.tree_path)

# In-memory session store: session_id -> SessionController
_sessions: dict[str, SessionController] = {}


class _SessionFileSync:
    """Board adapter that mirrors a session to current_session.json."""

    def __init__(self, session_id: str) -> None:
        self._session_id = session_id

    def show_position(self, fen: str, orientation: Orientation) -> None:
        controller = _sessions.get(self._session_id)
        if controller is not None:
            _sync_session_json(_build_session_state(self._session_id, controller))


def _build_session_state(session_id: str, controller: SessionController) -> dict:
    state = controller.snapshot()
    state["session_id"] = session_id
    return state


def _sync_session_json(session_state: dict) -> None:
    """Write session state to current_session.json atomically."""
    _config.data_dir.mkdir(parents=True, exist_ok=True)
    target = _config.session_path
    tmp = target.with_suffix(".tmp")
    tmp.write_text(
        json.dumps(session_state, indent=2, default=str, ensure_ascii=False),
        encoding="utf-8",
    )
    os.replace(tmp, target)


def _get_session(session_id: str) -> SessionController | None:
    return _sessions.get(session_id)


def _session_response(session_id: str, controller: SessionController) -> dict:
    state = _build_session_state(session_id, controller)
    _sync_session_json(state)
    return minify_session_state(state)


# ---------------------------------------------------------------------------
# Session tools
# ---------------------------------------------------------------------------


@mcp.tool()
def new_session(orientation: str = "white", mode: str = "learning") -> dict:
    """Start a new opening training session at the initial position.

    Args:
        orientation: 'white' or 'black', the side shown at the bottom.
        mode: 'learning' (moves checked against the book) or 'free_play'.

    Returns:
        Session state dict.
    """
    try:
        state = SessionState(orientation=Orientation(orientation), mode=AppMode(mode))
    except ValueError as exc:
        return {"error": f"Invalid session option: {exc}"}

    session_id = str(uuid.uuid4())
    store = SessionStore(_tree, state)
    controller = SessionController(
        store,
        InMemoryTreeLookup(_tree),
        adapter=_SessionFileSync(session_id),
        config=_config,
    )
    _sessions[session_id] = controller
    logger.info("Started session %s (%s, %s)", session_id, orientation, mode)

    return _session_response(session_id, controller)


@mcp.tool()
def get_session(session_id: str) -> dict:
    """Get the current board and book cursor for a session.

    Args:
        session_id: UUID of the session.

    Returns:
        Session state dict.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    return minify_session_state(_build_session_state(session_id, controller))


@mcp.tool()
async def drop_piece(
    session_id: str,
    source: str,
    destination: str,
    promotion: str = "q",
    wait: bool = True,
) -> dict:
    """Play a move by moving a piece from one square to another.

    In learning mode the trainer answers with the book move, takes back a
    move that is not in the book, or starts over when the line ends.

    Args:
        session_id: UUID of the session.
        source: Source square (e.g., 'e2').
        destination: Destination square (e.g., 'e4').
        promotion: Promotion piece letter used when a pawn promotes.
        wait: Wait for the trainer's reply before returning (default True).

    Returns:
        Session state dict after the turn, or an error dict if rejected.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    if controller.busy:
        return {"error": "Previous move is still being answered"}

    if not await controller.on_piece_drop(source, destination, promotion):
        return {"error": f"Illegal move: {source}{destination}"}
    if wait:
        await controller.drain()
    return _session_response(session_id, controller)


@mcp.tool()
async def play_move(session_id: str, move: str, wait: bool = True) -> dict:
    """Play a move in SAN notation (e.g., 'e4', 'Nf3', 'O-O').

    Args:
        session_id: UUID of the session.
        move: Move in SAN notation.
        wait: Wait for the trainer's reply before returning (default True).

    Returns:
        Session state dict after the turn, or an error dict if rejected.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    if controller.busy:
        return {"error": "Previous move is still being answered"}

    if not await controller.on_san(move):
        legal = [controller.board.board.san(m) for m in controller.board.board.legal_moves]
        return {"error": f"Illegal move: {move}. Legal moves: {legal}"}
    if wait:
        await controller.drain()
    return _session_response(session_id, controller)


@mcp.tool()
def set_mode(session_id: str, mode: str) -> dict:
    """Switch a session between 'learning' and 'free_play'.

    Args:
        session_id: UUID of the session.
        mode: 'learning' or 'free_play'.

    Returns:
        Session state dict.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    try:
        app_mode = AppMode(mode)
    except ValueError:
        return {"error": f"Invalid mode: {mode}"}

    controller.store.dispatch(SetMode(app_mode))
    return _session_response(session_id, controller)


@mcp.tool()
def reset_session(session_id: str) -> dict:
    """Abandon the current line and return to the starting position.

    Pending trainer replies from the abandoned line are cancelled.

    Args:
        session_id: UUID of the session.

    Returns:
        Session state dict.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}
    controller.reset_session()
    return _session_response(session_id, controller)


@mcp.tool()
def list_book_moves(session_id: str) -> dict:
    """List the book continuations from the session's current position.

    Args:
        session_id: UUID of the session.

    Returns:
        Dict with the line so far and the book moves available from it.
    """
    controller = _get_session(session_id)
    if controller is None:
        return {"error": f"Session not found: {session_id}"}

    tree = controller.store.tree
    cursor = controller.store.cursor
    state = minify_session_state(_build_session_state(session_id, controller))
    return {
        "session_id": session_id,
        "line": state["line"],
        "book_moves": [
            child.move for child in tree.children_of(cursor) if not child.is_provisional
        ],
    }


# ---------------------------------------------------------------------------
# Book tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_book_line(moves: str) -> dict:
    """Add a line of SAN moves from the initial position to the book.

    Moves already in the book are reused; off-book moves played earlier
    along the same line are confirmed as book moves.

    Args:
        moves: Space-separated SAN moves, e.g. 'e4 e5 Nf3 Nc6'.

    Returns:
        Dict with the added line and the new book size.
    """
    sans = moves.split()
    if not sans:
        return {"error": "No moves given"}
    try:
        _tree.add_line(sans)
    except ValueError as exc:
        return {"error": f"Illegal line: {exc}"}

    _tree.save(_config.tree_path)
    return {"line": sans, "book_size": len(_tree) - 1}


@mcp.tool()
def load_tree(pgn: str | None = None) -> dict:
    """Replace the book for new sessions.

    Args:
        pgn: PGN text whose games and variations become the book. If
            omitted, the book is reloaded from data/opening_tree.json.

    Returns:
        Dict with the new book size. Existing sessions keep their book.
    """
    global _tree

    if pgn:
        tree = MoveTree.from_pgn(pgn)
        if tree.root.is_leaf:
            return {"error": "PGN contained no moves"}
        tree.save(_config.tree_path)
    else:
        tree = MoveTree.load(_config.tree_path)

    _tree = tree
    return {"book_size": len(_tree) - 1, "first_moves": [c.move for c in _tree.children_of(_tree.root)]}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    mcp.run()
