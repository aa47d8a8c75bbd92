#!/usr/bin/env python3
"""Build the opening tree used by the trainer.

Sources, merged into one tree:
  - a PGN file (games and variations become book lines), and/or
  - the Lichess chess-openings TSV files (downloaded once and cached in
    data/openings_raw/).

Writes data/opening_tree.json.

Usage:
    uv run python -m opening_trainer.build_tree --lichess
    uv run python -m opening_trainer.build_tree --pgn repertoire.pgn
"""

from __future__ import annotations

import argparse
import csv
import io
import logging
import os
import sys
import urllib.request
from pathlib import Path

import chess.pgn

from opening_trainer.config import TrainerConfig
from opening_trainer.move_tree import MoveTree, new_node_id
from opening_trainer.rules import piece_tag

logger = logging.getLogger(__name__)

_BASE_URL = "https://github.com/lichess-org/chess-openings/raw/master"
_TSV_FILES = ["a.tsv", "b.tsv", "c.tsv", "d.tsv", "e.tsv"]


def download_tsvs(raw_dir: Path) -> list[Path]:
    """Download TSV files from Lichess GitHub, caching in ``raw_dir``."""
    raw_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for fname in _TSV_FILES:
        local_path = raw_dir / fname
        if local_path.exists():
            print(f"  Cached: {fname}")
            paths.append(local_path)
            continue
        url = f"{_BASE_URL}/{fname}"
        print(f"  Downloading: {url}")
        try:
            urllib.request.urlretrieve(url, local_path)
        except OSError as e:
            print(f"ERROR: Failed to download {url}", file=sys.stderr)
            print(f"  {e}", file=sys.stderr)
            print("Check your internet connection and try again.", file=sys.stderr)
            sys.exit(1)
        paths.append(local_path)
    return paths


def add_pgn_line(tree: MoveTree, pgn_text: str) -> int:
    """Add the mainline of a short PGN fragment (e.g. '1. e4 c5') to ``tree``.

    Returns:
        Number of plies in the line; 0 if the PGN could not be parsed.
    """
    game = chess.pgn.read_game(io.StringIO(pgn_text))
    if game is None or game.errors:
        return 0
    board = game.board()
    node = tree.root
    plies = 0
    for move in game.mainline_moves():
        node = tree.add_child(node.key, board.san(move), piece_tag(board, move), new_node_id())
        board.push(move)
        plies += 1
    return plies


def merge_tsvs(tree: MoveTree, paths: list[Path]) -> int:
    """Merge every opening row of the Lichess TSVs into ``tree``."""
    lines = 0
    for path in paths:
        with open(path, "r", encoding="utf-8") as f:
            reader = csv.DictReader(f, delimiter="\t")
            for row in reader:
                pgn = row.get("pgn", "").strip()
                if pgn and add_pgn_line(tree, pgn):
                    lines += 1
                elif pgn:
                    logger.warning("Skipping unparseable line %r in %s", pgn, path.name)
    return lines


def merge_pgn_file(tree: MoveTree, path: Path) -> MoveTree:
    """Merge games and variations from a PGN file into ``tree``."""
    source = MoveTree.from_pgn(path.read_text(encoding="utf-8"))
    stack = [(source.root, tree.root.key)]
    while stack:
        src_node, dst_key = stack.pop()
        for child in source.children_of(src_node):
            added = tree.add_child(dst_key, child.move, child.piece, child.id)
            stack.append((child, added.key))
    return tree


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Build the opening trainer's book tree")
    parser.add_argument("--pgn", type=Path, help="PGN file with repertoire lines")
    parser.add_argument(
        "--lichess", action="store_true",
        help="Include the Lichess chess-openings catalogue",
    )
    parser.add_argument("--out", type=Path, help="Output JSON path")
    args = parser.parse_args(argv)

    if not args.pgn and not args.lichess:
        parser.error("give --pgn and/or --lichess")

    config = TrainerConfig.from_env()
    out_path = args.out or config.tree_path
    tree = MoveTree()

    print("=== Building Opening Tree ===")
    if args.lichess:
        print("Downloading Lichess openings...")
        paths = download_tsvs(config.data_dir / "openings_raw")
        lines = merge_tsvs(tree, paths)
        print(f"  {lines} lines merged.")
    if args.pgn:
        if not args.pgn.exists():
            print(f"ERROR: PGN file not found: {args.pgn}", file=sys.stderr)
            sys.exit(1)
        print(f"Reading {args.pgn}...")
        merge_pgn_file(tree, args.pgn)

    tree.save(out_path)
    print(f"=== Done! {len(tree) - 1} moves written to {out_path} "
          f"({os.path.getsize(out_path):,} bytes) ===")


if __name__ == "__main__":
    main()
