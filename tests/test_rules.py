"""Tests for the python-chess rules adapter."""

from __future__ import annotations

import chess

from opening_trainer.models import Orientation
from opening_trainer.rules import RulesBoard, piece_tag

_PROMOTION_FEN = "8/4P3/8/8/8/8/k7/4K3 w - - 0 1"


class TestApplyMove:

    def test_legal_move(self):
        board = RulesBoard()
        result = board.apply_move("e2", "e4")
        assert result.ok
        assert result.san == "e4"
        assert result.uci == "e2e4"
        assert result.piece == "wp"
        assert result.fen == board.fen()
        assert board.turn == Orientation.BLACK

    def test_illegal_move_leaves_position(self):
        board = RulesBoard()
        result = board.apply_move("e2", "e5")
        assert not result.ok
        assert "Illegal" in result.error
        assert board.fen() == chess.STARTING_FEN
        assert board.move_count == 0

    def test_invalid_square(self):
        board = RulesBoard()
        result = board.apply_move("z9", "e4")
        assert not result.ok
        assert "Invalid square" in result.error

    def test_default_promotion_is_queen(self):
        board = RulesBoard(_PROMOTION_FEN)
        result = board.apply_move("e7", "e8")
        assert result.ok
        assert result.san.startswith("e8=Q")

    def test_underpromotion(self):
        board = RulesBoard(_PROMOTION_FEN)
        result = board.apply_move("e7", "e8", promotion="n")
        assert result.ok
        assert result.san.startswith("e8=N")

    def test_promotion_letter_ignored_for_ordinary_moves(self):
        board = RulesBoard()
        assert board.apply_move("g1", "f3", promotion="q").ok

    def test_knight_piece_tag(self):
        board = RulesBoard()
        board.apply_move("e2", "e4")
        result = board.apply_move("b8", "c6")
        assert result.piece == "bn"


class TestApplySanAndUndo:

    def test_apply_san(self):
        board = RulesBoard()
        assert board.apply_san("e4").ok
        result = board.apply_san("e5")
        assert result.ok
        assert board.san_history() == ["e4", "e5"]

    def test_bad_san(self):
        board = RulesBoard()
        result = board.apply_san("Qxf7")
        assert not result.ok
        assert board.move_count == 0

    def test_undo_is_exact(self):
        board = RulesBoard()
        board.apply_san("e4")
        before = board.fen()
        board.apply_move("g8", "f6")
        assert board.undo()
        assert board.fen() == before

    def test_undo_without_moves(self):
        assert not RulesBoard().undo()

    def test_reset(self):
        board = RulesBoard()
        board.apply_san("d4")
        board.reset()
        assert board.fen() == chess.STARTING_FEN
        assert board.move_count == 0


def test_piece_tag_empty_square():
    board = chess.Board()
    assert piece_tag(board, chess.Move.from_uci("e4e5")) == ""
