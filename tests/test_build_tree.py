"""Tests for building the book tree from PGN and Lichess TSV sources.

No network access: the TSV tests write their own files.
"""

from __future__ import annotations

import json

from opening_trainer.build_tree import add_pgn_line, main, merge_pgn_file, merge_tsvs
from opening_trainer.models import ROOT_KEY
from opening_trainer.move_tree import MoveTree

_TSV_HEADER = "eco\tname\tpgn\n"


def test_add_pgn_line():
    tree = MoveTree()
    assert add_pgn_line(tree, "1. e4 c5 2. Nf3") == 3
    e4 = tree.child_by_move(ROOT_KEY, "e4")
    assert e4.piece == "wp"
    assert tree.path_to(tree.first_child(tree.first_child(e4))) == ["e4", "c5", "Nf3"]


def test_add_pgn_line_rejects_illegal_moves():
    tree = MoveTree()
    assert add_pgn_line(tree, "1. e4 e5 2. Qxf7") == 0


def test_merge_tsvs(tmp_path):
    tsv = tmp_path / "b.tsv"
    tsv.write_text(
        _TSV_HEADER
        + "B20\tSicilian Defense\t1. e4 c5\n"
        + "B27\tSicilian Defense: Hyperaccelerated Dragon\t1. e4 c5 2. Nf3 g6\n"
        + "C20\tKing's Pawn Game\t1. e4 e5\n",
        encoding="utf-8",
    )
    tree = MoveTree()
    assert merge_tsvs(tree, [tsv]) == 3
    e4 = tree.child_by_move(ROOT_KEY, "e4")
    assert [c.move for c in tree.children_of(e4)] == ["c5", "e5"]


def test_merge_pgn_file_into_existing_tree(tmp_path):
    pgn = tmp_path / "rep.pgn"
    pgn.write_text("1. d4 d5 (1... Nf6 2. c4) 2. c4 *\n", encoding="utf-8")
    tree = MoveTree()
    tree.add_line(["e4"])
    merge_pgn_file(tree, pgn)
    assert [c.move for c in tree.children_of(tree.root)] == ["e4", "d4"]
    d4 = tree.child_by_move(ROOT_KEY, "d4")
    assert [c.move for c in tree.children_of(d4)] == ["d5", "Nf6"]


def test_main_writes_tree(tmp_path):
    pgn = tmp_path / "rep.pgn"
    pgn.write_text("1. e4 e5 2. Nf3 *\n", encoding="utf-8")
    out = tmp_path / "tree.json"
    main(["--pgn", str(pgn), "--out", str(out)])
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["children"][0]["move"] == "e4"
    assert len(MoveTree.load(out)) == 4
