"""Decides what the trainer does with a player's move in learning mode."""

from __future__ import annotations

import logging

from opening_trainer.models import LearnOutcome, MoveNode, Resolution
from opening_trainer.move_tree import MalformedTreeError, MoveTree, TreeLookupService

logger = logging.getLogger(__name__)


class LearningResolver:
    """Matches a player move against the book children of the cursor.

    Outcomes:
        END       - the cursor is already at the end of its line, or the
                    move matches a child with no continuation.
        INCORRECT - the move is not a book child of the cursor.
        CONTINUE  - the move matches; ``auto_reply`` is the first child of
                    the matched node.

    A None result means the tree data could not be resolved.
    """

    def __init__(self, lookup: TreeLookupService, tree: MoveTree) -> None:
        self._lookup = lookup
        self._tree = tree

    async def resolve(self, player_move: str, cursor: MoveNode) -> Resolution | None:
        try:
            if not cursor.is_root and self._tree.get(cursor.key).is_leaf:
                return Resolution(LearnOutcome.END)

            matched = await self._lookup.lookup_child(player_move, cursor)
            if matched is None:
                return Resolution(LearnOutcome.INCORRECT)
            if matched.is_leaf:
                return Resolution(LearnOutcome.END, matched=matched)

            auto_reply = self._tree.first_child(matched)
        except MalformedTreeError as exc:
            logger.warning("Could not resolve %s at %r: %s", player_move, cursor.move, exc)
            return None

        return Resolution(LearnOutcome.CONTINUE, matched=matched, auto_reply=auto_reply)
