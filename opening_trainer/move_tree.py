"""Opening tree storage and child lookup.

The tree is an arena: a flat dict of MoveNode values keyed by an integer
key, plus an index from (parent key, SAN) to child key. Nodes are frozen;
appending a child replaces the parent with a copy, so a MoveNode handed
out earlier stays a consistent snapshot.

Usage:
    from opening_trainer.move_tree import MoveTree, InMemoryTreeLookup
    tree = MoveTree.from_pgn("1. e4 e5 (1... c5 2. Nf3) 2. Nf3 *")
    lookup = InMemoryTreeLookup(tree)
    node = await lookup.lookup_child("e4", tree.root)
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import shutil
import uuid
from dataclasses import replace
from pathlib import Path
from typing import Protocol

import chess
import chess.pgn

from opening_trainer.models import ROOT_KEY, MoveNode
from opening_trainer.rules import piece_tag

logger = logging.getLogger(__name__)


class MalformedTreeError(ValueError):
    """Tree data references a node that does not exist."""


def new_node_id() -> str:
    return uuid.uuid4().hex


class MoveTree:
    """Arena of MoveNodes rooted at an empty sentinel node."""

    def __init__(self) -> None:
        self._nodes: dict[int, MoveNode] = {
            ROOT_KEY: MoveNode(key=ROOT_KEY, id="", move="", piece="")
        }
        self._index: dict[tuple[int, str], int] = {}
        self._next_key = ROOT_KEY + 1

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    @property
    def root(self) -> MoveNode:
        return self._nodes[ROOT_KEY]

    def get(self, key: int) -> MoveNode:
        try:
            return self._nodes[key]
        except KeyError:
            raise MalformedTreeError(f"Unknown node key: {key}") from None

    def children_of(self, node: MoveNode) -> list[MoveNode]:
        return [self.get(k) for k in self.get(node.key).children]

    def first_child(self, node: MoveNode) -> MoveNode | None:
        children = self.get(node.key).children
        if not children:
            return None
        return self.get(children[0])

    def path_to(self, node: MoveNode) -> list[str]:
        """SAN moves from the root down to ``node`` (root gives [])."""
        moves = []
        current = self.get(node.key)
        while not current.is_root:
            moves.append(current.move)
            current = self.get(current.parent)
        moves.reverse()
        return moves

    # ── Lookup and append ───────────────────────────────────────────

    def child_by_move(self, parent_key: int, move: str) -> MoveNode | None:
        """Return the child of ``parent_key`` whose move is ``move``.

        Raises:
            MalformedTreeError: If the parent is unknown or the index
                points at a node missing from the arena.
        """
        if parent_key not in self._nodes:
            raise MalformedTreeError(f"Unknown parent key: {parent_key}")
        child_key = self._index.get((parent_key, move))
        if child_key is None:
            return None
        return self.get(child_key)

    def add_child(
        self, parent_key: int, move: str, piece: str, node_id: str = ""
    ) -> MoveNode:
        """Append a child move under ``parent_key``.

        Sibling moves are unique: if the move already exists it is returned
        instead. An existing provisional child is confirmed in place when a
        persisted ``node_id`` is supplied.
        """
        existing = self.child_by_move(parent_key, move)
        if existing is not None:
            if node_id and existing.is_provisional:
                existing = replace(existing, id=node_id)
                self._nodes[existing.key] = existing
            return existing

        key = self._next_key
        self._next_key += 1
        node = MoveNode(key=key, id=node_id, move=move, piece=piece, parent=parent_key)
        self._nodes[key] = node
        self._index[(parent_key, move)] = key

        parent = self._nodes[parent_key]
        self._nodes[parent_key] = replace(parent, children=parent.children + (key,))
        return node

    def add_line(self, sans: list[str], persisted: bool = True) -> MoveNode:
        """Add a SAN line starting from the initial position.

        Returns:
            The node of the last move in the line.

        Raises:
            ValueError: If a move is illegal in the line's position.
        """
        board = chess.Board()
        node = self.root
        for san in sans:
            move = board.parse_san(san)
            node = self.add_child(
                node.key,
                board.san(move),
                piece_tag(board, move),
                new_node_id() if persisted else "",
            )
            board.push(move)
        return node

    # ── Serialization ───────────────────────────────────────────────

    def to_dict(self, include_provisional: bool = False) -> dict:
        """Nested dict form of the tree, as stored in opening_tree.json."""

        def _dump(node: MoveNode) -> dict:
            children = [
                _dump(child) for child in self.children_of(node)
                if include_provisional or not child.is_provisional
            ]
            return {
                "id": node.id,
                "move": node.move,
                "piece": node.piece,
                "children": children,
            }

        return _dump(self.root)

    @classmethod
    def from_dict(cls, data: dict) -> "MoveTree":
        """Build a tree from the nested dict form.

        Raises:
            MalformedTreeError: If a node is missing its move or has
                non-list children.
        """
        tree = cls()
        stack = [(ROOT_KEY, child) for child in reversed(data.get("children", []))]
        while stack:
            parent_key, entry = stack.pop()
            if not isinstance(entry, dict) or not entry.get("move"):
                raise MalformedTreeError(f"Malformed tree entry: {entry!r}")
            children = entry.get("children", [])
            if not isinstance(children, list):
                raise MalformedTreeError(f"Children must be a list: {entry['move']}")
            node = tree.add_child(
                parent_key, entry["move"], entry.get("piece", ""), entry.get("id", "")
            )
            stack.extend((node.key, child) for child in reversed(children))
        return tree

    @classmethod
    def from_pgn(cls, pgn_text: str) -> "MoveTree":
        """Merge every game (with variations) in ``pgn_text`` into one tree."""
        tree = cls()
        stream = io.StringIO(pgn_text)
        games = 0
        while True:
            game = chess.pgn.read_game(stream)
            if game is None:
                break
            games += 1
            stack = [(game, ROOT_KEY)]
            while stack:
                game_node, parent_key = stack.pop()
                board = game_node.board()
                # Mainline first, so it becomes the book reply
                added = [
                    (variation, tree.add_child(
                        parent_key,
                        board.san(variation.move),
                        piece_tag(board, variation.move),
                        new_node_id(),
                    ).key)
                    for variation in game_node.variations
                ]
                stack.extend(reversed(added))
        logger.info("Built tree with %d nodes from %d PGN games", len(tree), games)
        return tree

    @classmethod
    def load(cls, path: str | Path) -> "MoveTree":
        """Load a tree from JSON, falling back to an empty tree.

        A corrupt file is backed up with a .bak suffix before starting
        fresh.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise MalformedTreeError("Tree file must contain a JSON object")
            return cls.from_dict(data)
        except (json.JSONDecodeError, MalformedTreeError) as exc:
            backup_path = path.with_suffix(".bak")
            shutil.copy2(path, backup_path)
            logger.warning("Corrupt tree file %s (%s); backed up to %s", path, exc, backup_path)
            return cls()

    def save(self, path: str | Path) -> None:
        """Write persisted nodes to JSON with an atomic replace."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(
            json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        os.replace(tmp_path, path)


class TreeLookupService(Protocol):
    async def lookup_child(self, label: str, parent: MoveNode) -> MoveNode | None:
        ...


class InMemoryTreeLookup:
    """Resolves child moves against a live MoveTree.

    The parent is re-read from the arena by key, so a stale snapshot of the
    parent still sees children appended after it was handed out.
    """

    def __init__(self, tree: MoveTree, latency: float = 0.0) -> None:
        self._tree = tree
        self._latency = latency

    @property
    def tree(self) -> MoveTree:
        return self._tree

    async def lookup_child(self, label: str, parent: MoveNode) -> MoveNode | None:
        await asyncio.sleep(self._latency)
        if parent.key is None:
            # Not yet appended, so it cannot have children
            return None
        return self._tree.child_by_move(parent.key, label)
