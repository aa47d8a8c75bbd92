"""Turn cycle of a training session.

The controller applies the player's drop to the board, asks the resolver
what to do in learning mode, and schedules the visible reaction (book
reply, take-back or fresh board) after a short delay so the player sees a
move-and-reply rhythm. Store updates are issued eagerly.

Deferred effects are asyncio tasks stamped with the session generation.
reset_session() cancels them and bumps the generation, so an effect that
outlives its session is dropped instead of touching a fresh game. Cursor
updates still waiting on a lookup check the generation the same way.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

import chess

from opening_trainer.config import TrainerConfig
from opening_trainer.models import (
    AppMode,
    LearnOutcome,
    MoveNode,
    MoveResult,
    Orientation,
    TurnState,
)
from opening_trainer.move_tree import MalformedTreeError, TreeLookupService
from opening_trainer.resolver import LearningResolver
from opening_trainer.rules import RulesBoard
from opening_trainer.store import MakeMove, Reset, SessionStore

logger = logging.getLogger(__name__)


class BoardAdapter(Protocol):
    def show_position(self, fen: str, orientation: Orientation) -> None:
        ...


async def record_move(
    store: SessionStore,
    lookup: TreeLookupService,
    label: str,
    piece: str,
    parent: MoveNode,
    is_current: Callable[[], bool] | None = None,
) -> MoveNode | None:
    """Move the cursor to ``label`` under ``parent``.

    A known child becomes the cursor and is returned, so replaying a known
    move never duplicates it. An unknown move is appended as a provisional
    node and None is returned.

    ``is_current`` is checked once the lookup returns; if it is False the
    session moved on while waiting and nothing is dispatched.
    """
    child = await lookup.lookup_child(label, parent)
    if is_current is not None and not is_current():
        logger.debug("Dropping cursor update for %s from an old session", label)
        return None
    if child is not None:
        store.dispatch(MakeMove(child))
        return child
    store.dispatch(MakeMove(MoveNode(key=None, id="", move=label, piece=piece, parent=parent.key)))
    return None


class SessionController:
    """Drives one trainer session from piece drops to board updates."""

    def __init__(
        self,
        store: SessionStore,
        lookup: TreeLookupService,
        board: RulesBoard | None = None,
        adapter: BoardAdapter | None = None,
        config: TrainerConfig | None = None,
    ) -> None:
        self._store = store
        self._lookup = lookup
        self._board = board or RulesBoard()
        self._adapter = adapter
        self._config = config or TrainerConfig()
        self._resolver = LearningResolver(lookup, store.tree)

        self._generation = 0
        self._pending: set[asyncio.Task] = set()
        self._in_turn = False
        self._turn_state = TurnState.IDLE
        self._last_outcome: LearnOutcome | None = None
        self._last_move: MoveResult | None = None

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def board(self) -> RulesBoard:
        return self._board

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def turn_state(self) -> TurnState:
        return self._turn_state

    @property
    def last_outcome(self) -> LearnOutcome | None:
        return self._last_outcome

    @property
    def busy(self) -> bool:
        return self._in_turn or bool(self._pending)

    def fen(self) -> str:
        return self._board.fen()

    # ── Player input ────────────────────────────────────────────────

    async def on_piece_drop(
        self, source: str, destination: str, promotion: str | None = "q"
    ) -> bool:
        """Handle a proposed move from the board.

        Returns:
            False if the drop is rejected (illegal, or a previous turn is
            still playing out); the board should snap the piece back.
        """
        if self.busy:
            logger.info("Rejected %s%s: previous turn still pending", source, destination)
            return False

        result = self._board.apply_move(source, destination, promotion)
        if not result.ok:
            logger.debug("Rejected drop: %s", result.error)
            return False

        generation = self._generation
        self._in_turn = True
        self._turn_state = TurnState.PLAYER_MOVED
        self._last_move = result
        self._show()
        try:
            if self._store.mode == AppMode.LEARNING:
                await self._handle_learn(result, self._store.cursor, generation)
            else:
                self._last_outcome = None
                await self._record(result.san, result.piece, self._store.cursor, generation)
        except MalformedTreeError as exc:
            logger.warning("Turn for %s aborted: %s", result.san, exc)
        finally:
            self._in_turn = False
            self._settle()
        return True

    async def on_san(self, san: str) -> bool:
        """Handle a move given in SAN, as a drop of the matching squares."""
        try:
            move = self._board.board.parse_san(san)
        except ValueError:
            logger.debug("Rejected unparseable move %s", san)
            return False
        promotion = chess.piece_symbol(move.promotion) if move.promotion else None
        return await self.on_piece_drop(
            chess.square_name(move.from_square),
            chess.square_name(move.to_square),
            promotion,
        )

    async def _handle_learn(self, result: MoveResult, cursor: MoveNode, generation: int) -> None:
        resolution = await self._resolver.resolve(result.san, cursor)
        if generation != self._generation:
            logger.debug("Dropping resolution for %s from an old session", result.san)
            return
        if resolution is None:
            logger.warning("No resolution for %s; turn aborted", result.san)
            self._last_outcome = None
            return

        self._last_outcome = resolution.outcome
        logger.info("%s at %r: %s", result.san, cursor.move or "start", resolution.outcome.value)

        if resolution.outcome == LearnOutcome.END:
            self._turn_state = TurnState.ENDING
            self._store.dispatch(Reset())
            self._schedule(self._config.reset_delay, self._board.reset)
            return

        if resolution.outcome == LearnOutcome.INCORRECT:
            self._turn_state = TurnState.REVERTING
            self._schedule(self._config.revert_delay, self._board.undo)
            return

        auto_reply = resolution.auto_reply
        fetched = await self._record(result.san, result.piece, cursor, generation)
        if fetched is not None:
            await self._record(auto_reply.move, auto_reply.piece, fetched, generation)
        if generation != self._generation:
            return
        self._turn_state = TurnState.AUTO_REPLYING
        self._schedule(self._config.auto_reply_delay, lambda: self._play_book_move(auto_reply))

    async def _record(
        self, label: str, piece: str, parent: MoveNode, generation: int
    ) -> MoveNode | None:
        return await record_move(
            self._store,
            self._lookup,
            label,
            piece,
            parent,
            is_current=lambda: generation == self._generation,
        )

    def _play_book_move(self, node: MoveNode) -> None:
        reply = self._board.apply_san(node.move)
        if not reply.ok:
            logger.warning("Book reply %s is not playable: %s", node.move, reply.error)
            return
        self._last_move = reply

    # ── Deferred effects ────────────────────────────────────────────

    def _schedule(self, delay: float, effect: Callable[[], object]) -> asyncio.Task:
        generation = self._generation

        async def _run() -> None:
            await asyncio.sleep(delay)
            if generation != self._generation:
                logger.debug("Skipping board effect from generation %d", generation)
                return
            effect()
            self._show()

        task = asyncio.get_running_loop().create_task(_run())
        self._pending.add(task)
        task.add_done_callback(self._effect_done)
        return task

    def _effect_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Board effect failed", exc_info=task.exception())
        self._settle()

    def _settle(self) -> None:
        if not self._in_turn and not self._pending:
            self._turn_state = TurnState.IDLE

    async def drain(self) -> None:
        """Wait until every scheduled board effect has run or been cancelled."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def reset_session(self) -> None:
        """Abandon the current line: fresh board, empty cursor, new generation."""
        self._generation += 1
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        self._board.reset()
        self._store.dispatch(Reset())
        self._last_outcome = None
        self._last_move = None
        self._settle()
        self._show()

    # ── Observers ───────────────────────────────────────────────────

    def _show(self) -> None:
        if self._adapter is not None:
            self._adapter.show_position(self._board.fen(), self._store.orientation)

    def snapshot(self) -> dict:
        """Plain-dict view of the session for the MCP server and TUI."""
        tree = self._store.tree
        cursor = self._store.cursor
        return {
            "generation": self._generation,
            "fen": self._board.fen(),
            "orientation": self._store.orientation.value,
            "mode": self._store.mode.value,
            "turn_state": self._turn_state.value,
            "busy": self.busy,
            "last_outcome": self._last_outcome.value if self._last_outcome else None,
            "last_move_san": self._last_move.san if self._last_move else None,
            "last_move": self._last_move.uci if self._last_move else None,
            "move_list": self._board.san_history(),
            "cursor": {
                "id": cursor.id,
                "move": cursor.move,
                "piece": cursor.piece,
                "provisional": cursor.is_provisional,
                "line": tree.path_to(cursor),
                "book_moves": len(cursor.children),
            },
        }
