"""Session state container.

Holds the cursor, orientation and mode for one trainer session. State is
only changed by dispatching actions; the reducer produces a new
SessionState and subscribers are notified synchronously after each commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Union

from opening_trainer.models import ROOT_KEY, AppMode, MoveNode, Orientation, SessionState
from opening_trainer.move_tree import MoveTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MakeMove:
    """Move the cursor to ``node``; a provisional node is appended first."""

    node: MoveNode


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class SetMode:
    mode: AppMode


@dataclass(frozen=True)
class SetOrientation:
    orientation: Orientation


Action = Union[MakeMove, Reset, SetMode, SetOrientation]
Listener = Callable[[SessionState], None]


class SessionStore:
    """Explicitly constructed state container for one session."""

    def __init__(self, tree: MoveTree, state: SessionState | None = None) -> None:
        self._tree = tree
        self._state = state or SessionState()
        self._listeners: list[Listener] = []
        self._dispatching = False

    @property
    def tree(self) -> MoveTree:
        return self._tree

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def cursor(self) -> MoveNode:
        return self._tree.get(self._state.cursor)

    @property
    def orientation(self) -> Orientation:
        return self._state.orientation

    @property
    def mode(self) -> AppMode:
        return self._state.mode

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, action: Action) -> SessionState:
        """Apply ``action`` and notify listeners.

        Raises:
            RuntimeError: If called from inside a listener.
            TypeError: If ``action`` is not a known action.
        """
        if self._dispatching:
            raise RuntimeError("Cannot dispatch while notifying listeners")
        self._state = self._reduce(self._state, action)
        self._dispatching = True
        try:
            for listener in list(self._listeners):
                listener(self._state)
        finally:
            self._dispatching = False
        return self._state

    def _reduce(self, state: SessionState, action: Action) -> SessionState:
        if isinstance(action, MakeMove):
            node = action.node
            if node.key is None:
                parent_key = state.cursor if node.parent is None else node.parent
                node = self._tree.add_child(parent_key, node.move, node.piece, node.id)
                logger.debug("Appended provisional move %s under %s", node.move, parent_key)
            return replace(state, cursor=node.key)
        if isinstance(action, Reset):
            return replace(state, cursor=ROOT_KEY)
        if isinstance(action, SetMode):
            return replace(state, mode=action.mode)
        if isinstance(action, SetOrientation):
            return replace(state, orientation=action.orientation)
        raise TypeError(f"Unknown action: {action!r}")
