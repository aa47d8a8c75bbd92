"""Rules-engine adapter around python-chess.

Every move attempt returns a MoveResult instead of raising, so the session
controller can treat an illegal drop as an ordinary rejected result.
"""

from __future__ import annotations

import chess

from opening_trainer.models import MoveResult, Orientation

_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def piece_tag(board: chess.Board, move: chess.Move) -> str:
    """Side-and-piece tag of the piece making ``move``, e.g. 'wp' or 'bn'.

    Args:
        board: Position before the move.
        move: A legal move in that position.

    Returns:
        Color letter ('w'/'b') followed by the lowercase piece letter.
    """
    piece = board.piece_at(move.from_square)
    if piece is None:
        return ""
    color = "w" if piece.color == chess.WHITE else "b"
    return color + chess.piece_symbol(piece.piece_type)


class RulesBoard:
    """A chess position that accepts moves and single-ply undo."""

    def __init__(self, fen: str | None = None) -> None:
        self._board = chess.Board(fen) if fen else chess.Board()

    @property
    def board(self) -> chess.Board:
        return self._board

    @property
    def turn(self) -> Orientation:
        return Orientation.WHITE if self._board.turn == chess.WHITE else Orientation.BLACK

    @property
    def move_count(self) -> int:
        return len(self._board.move_stack)

    def fen(self) -> str:
        return self._board.fen()

    def reset(self) -> None:
        """Replace the position with the standard starting position."""
        self._board = chess.Board()

    def _push(self, move: chess.Move) -> MoveResult:
        san = self._board.san(move)
        tag = piece_tag(self._board, move)
        self._board.push(move)
        return MoveResult(
            ok=True, san=san, uci=move.uci(), piece=tag, fen=self._board.fen()
        )

    def apply_move(
        self, from_square: str, to_square: str, promotion: str | None = "q"
    ) -> MoveResult:
        """Apply a move given as a (source, destination) square pair.

        The promotion piece is only used when the plain move is illegal
        and the promoting move is legal, so a default of 'q' is harmless
        for ordinary moves.

        Args:
            from_square: Source square name, e.g. 'e2'.
            to_square: Destination square name, e.g. 'e4'.
            promotion: Promotion piece letter (q, r, b, n) or None.

        Returns:
            MoveResult with ok=False and an error message if rejected.
        """
        try:
            src = chess.parse_square(from_square)
            dst = chess.parse_square(to_square)
        except ValueError:
            return MoveResult(
                ok=False, fen=self.fen(),
                error=f"Invalid square: {from_square}{to_square}",
            )

        move = chess.Move(src, dst)
        if move not in self._board.legal_moves and promotion:
            promo_piece = _PROMOTION_PIECES.get(promotion.lower())
            if promo_piece is None:
                return MoveResult(
                    ok=False, fen=self.fen(),
                    error=f"Invalid promotion piece: {promotion}",
                )
            move = chess.Move(src, dst, promotion=promo_piece)

        if move not in self._board.legal_moves:
            return MoveResult(
                ok=False, fen=self.fen(),
                error=f"Illegal move: {from_square}{to_square}",
            )
        return self._push(move)

    def apply_san(self, san: str) -> MoveResult:
        """Apply a move in SAN notation (used for book auto-replies)."""
        try:
            move = self._board.parse_san(san)
        except (chess.InvalidMoveError, chess.IllegalMoveError, chess.AmbiguousMoveError):
            return MoveResult(ok=False, fen=self.fen(), error=f"Illegal move: {san}")
        return self._push(move)

    def undo(self) -> bool:
        """Take back the last ply. Returns False if there is none."""
        if not self._board.move_stack:
            return False
        self._board.pop()
        return True

    def san_history(self) -> list[str]:
        """SAN of every ply played since the root position."""
        temp = self._board.root()
        sans = []
        for move in self._board.move_stack:
            sans.append(temp.san(move))
            temp.push(move)
        return sans
