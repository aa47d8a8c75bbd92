"""Terminal chess board for the opening trainer.

Renders a Rich-based board that auto-updates by watching
data/current_session.json via watchdog at ~4Hz. Supports --sample to
render once without the MCP server, and --play to train locally with the
terminal acting as the board.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
import time
from pathlib import Path

import chess
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from opening_trainer.config import TrainerConfig
from opening_trainer.models import AppMode, Orientation, SessionState
from opening_trainer.move_tree import InMemoryTreeLookup, MoveTree
from opening_trainer.session import SessionController
from opening_trainer.store import SessionStore

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SAMPLE_SESSION = _PROJECT_ROOT / "data" / "sample_session.json"

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "\u2654", "Q": "\u2655", "R": "\u2656", "B": "\u2657",
    "N": "\u2658", "P": "\u2659",
    "k": "\u265a", "q": "\u265b", "r": "\u265c", "b": "\u265d",
    "n": "\u265e", "p": "\u265f",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"
_HIGHLIGHT = "yellow"

_OUTCOME_STYLES = {
    "continue": "[green]Book move[/green]",
    "incorrect": "[red]Not in book, taking back[/red]",
    "end": "[cyan]Line complete[/cyan]",
}

_UCI_RE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")


def _load_session_state(path: Path) -> dict | None:
    """Load a session snapshot dict from a JSON file.

    Returns:
        Parsed dict or None if file missing/corrupt.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            return data
        return None
    except (json.JSONDecodeError, OSError):
        return None


def render_session(state: dict) -> Layout:
    """Render board and sidebar from a session snapshot dict."""
    layout = Layout()
    layout.split_row(
        Layout(name="board", ratio=2),
        Layout(name="sidebar", ratio=1),
    )
    layout["board"].update(render_board_panel(state))
    layout["sidebar"].update(render_sidebar(state))
    return layout


def render_board_panel(state: dict) -> Panel:
    """Render the position in ``state['fen']`` from the session's side."""
    fen = state.get("fen", chess.STARTING_FEN)
    is_flipped = state.get("orientation", "white") == "black"
    last_move = state.get("last_move")

    board = chess.Board(fen)

    highlight_squares: set[int] = set()
    if last_move:
        try:
            mv = chess.Move.from_uci(last_move)
            highlight_squares.update((mv.from_square, mv.to_square))
        except (ValueError, chess.InvalidMoveError):
            pass

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 1))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            sq = chess.square(file, rank)
            piece = board.piece_at(sq)
            bg = _LIGHT_SQ if (rank + file) % 2 == 1 else _DARK_SQ
            if sq in highlight_squares:
                bg = _HIGHLIGHT
            symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?") if piece else " "
            row.append(Text(f" {symbol} ", style=f"on {bg}"))
        table.add_row(*row)

    file_labels = [Text("  ")]
    for f in files:
        file_labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*file_labels)

    return Panel(table, title="Opening Trainer", border_style="blue")


def render_sidebar(state: dict) -> Panel:
    parts: list[str] = []

    mode = state.get("mode", AppMode.LEARNING.value)
    parts.append(f"[bold]Mode:[/bold] {mode.replace('_', ' ')}")
    parts.append(f"Turn: {state.get('turn_state', 'idle')}")

    outcome = state.get("last_outcome")
    if outcome:
        parts.append(_OUTCOME_STYLES.get(outcome, outcome))
    parts.append("")

    cursor = state.get("cursor") or {}
    line = cursor.get("line", [])
    if line:
        parts.append("[bold]Line:[/bold]")
        for i in range(0, len(line), 2):
            black_move = line[i + 1] if i + 1 < len(line) else ""
            parts.append(f"  {i // 2 + 1}. {line[i]} {black_move}")
        parts.append("")
    if cursor.get("provisional"):
        parts.append("[yellow]Off book[/yellow]")
    parts.append(f"Book continuations: {cursor.get('book_moves', 0)}")

    return Panel("\n".join(parts), title="Session", border_style="green")


def _render_waiting() -> Panel:
    return Panel(
        Text("Waiting for session...\n\nStart one via the MCP server to see the board.",
             justify="center"),
        title="Opening Trainer",
        border_style="dim",
    )


def _watch_loop(console: Console, session_path: Path) -> None:
    """Watch the session file and auto-update display at ~4Hz."""
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    last_state: dict | None = None
    state_changed = True

    class _Handler(FileSystemEventHandler):
        def on_modified(self, event):
            nonlocal state_changed
            if str(event.src_path).endswith(session_path.name):
                state_changed = True

        def on_moved(self, event):
            # Atomic writes land as a rename onto the session file
            nonlocal state_changed
            if str(event.dest_path).endswith(session_path.name):
                state_changed = True

    observer = Observer()
    session_path.parent.mkdir(parents=True, exist_ok=True)
    observer.schedule(_Handler(), str(session_path.parent), recursive=False)
    observer.start()

    try:
        with Live(console=console, refresh_per_second=4) as live:
            while True:
                if state_changed:
                    state = _load_session_state(session_path)
                    if state is not None:
                        last_state = state
                        live.update(render_session(state))
                    elif last_state is None:
                        live.update(_render_waiting())
                    state_changed = False
                time.sleep(0.25)
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()


class TerminalBoard:
    """Board adapter that prints the position whenever it changes."""

    def __init__(self, console: Console) -> None:
        self._console = console

    def show_position(self, fen: str, orientation: Orientation) -> None:
        self._console.print(render_board_panel({"fen": fen, "orientation": orientation.value}))


async def _play_loop(console: Console, config: TrainerConfig, state: SessionState) -> None:
    tree = MoveTree.load(config.tree_path)
    if tree.root.is_leaf:
        console.print(f"[yellow]No book lines in {config.tree_path}; every move is off book.[/yellow]")

    store = SessionStore(tree, state)
    controller = SessionController(
        store, InMemoryTreeLookup(tree), adapter=TerminalBoard(console), config=config
    )
    console.print(render_session(controller.snapshot()))
    console.print("Enter moves as e2e4 or SAN. 'reset' starts over, 'quit' exits.")

    while True:
        text = (await asyncio.to_thread(console.input, "[bold]move>[/bold] ")).strip()
        if text in ("quit", "exit"):
            return
        if text == "reset":
            controller.reset_session()
            continue
        if not text:
            continue

        if _UCI_RE.match(text):
            accepted = await controller.on_piece_drop(text[:2], text[2:4], text[4:] or "q")
        else:
            accepted = await controller.on_san(text)
        if not accepted:
            console.print(f"[red]Move rejected: {text}[/red]")
            continue
        await controller.drain()
        console.print(render_sidebar(controller.snapshot()))


def main() -> None:
    """CLI entry point for tui.py."""
    parser = argparse.ArgumentParser(description="Opening Trainer Terminal UI")
    parser.add_argument(
        "--sample", action="store_true",
        help="Render sample session and exit (no watch loop)",
    )
    parser.add_argument(
        "--play", action="store_true",
        help="Train locally, typing moves into the terminal",
    )
    parser.add_argument(
        "--black", action="store_true",
        help="Show the board from Black's side",
    )
    parser.add_argument(
        "--free", action="store_true",
        help="Free play: record moves without checking them against the book",
    )
    args = parser.parse_args()

    console = Console()
    config = TrainerConfig.from_env()

    if args.sample:
        state = _load_session_state(_SAMPLE_SESSION)
        if state is None:
            console.print("[red]Sample session not found at data/sample_session.json[/red]")
            sys.exit(1)
        console.print(render_session(state))
        return

    if args.play:
        state = SessionState(
            orientation=Orientation.BLACK if args.black else Orientation.WHITE,
            mode=AppMode.FREE_PLAY if args.free else AppMode.LEARNING,
        )
        try:
            asyncio.run(_play_loop(console, config, state))
        except (KeyboardInterrupt, EOFError):
            pass
        return

    _watch_loop(console, config.session_path)


if __name__ == "__main__":
    main()
