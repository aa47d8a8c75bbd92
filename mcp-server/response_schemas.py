"""Response schemas and minification for MCP tool responses.

Minifies MCP tool return values to reduce LLM context token waste.
data/current_session.json (TUI sync) is NOT affected, only MCP return
values.

PGN string format for move_list and line uses standard chess notation
(1.e4 e5 2.Nf3 ...) which is natural for the LLM agent to read.
"""

from __future__ import annotations

import os


# ---------------------------------------------------------------------------
# Minification functions
# ---------------------------------------------------------------------------


def minify_session_state(state: dict) -> dict:
    """Minify a session snapshot for MCP response.

    Drops the generation counter, busy flag, UCI last move and the
    cursor's id and piece tag. Move lists become PGN strings.

    Args:
        state: Full snapshot (as produced by SessionController.snapshot
               plus session_id).

    Returns:
        Minified dict with reduced token footprint.
    """
    result = {}

    for key in (
        "session_id", "fen", "orientation", "mode", "turn_state",
        "last_outcome", "last_move_san",
    ):
        if key in state:
            result[key] = state[key]

    move_list = state.get("move_list", [])
    if isinstance(move_list, list):
        result["move_list"] = _moves_to_pgn_string(move_list)
    else:
        result["move_list"] = move_list

    cursor = state.get("cursor") or {}
    line = cursor.get("line", [])
    result["line"] = _moves_to_pgn_string(line) if isinstance(line, list) else line
    result["off_book"] = bool(cursor.get("provisional", False))
    result["book_moves"] = cursor.get("book_moves", 0)

    # Removed fields: generation, busy, last_move, cursor id/piece

    return result


# ---------------------------------------------------------------------------
# Helper: move list to PGN string
# ---------------------------------------------------------------------------


def _moves_to_pgn_string(moves: list[str]) -> str:
    """Convert a list of SAN moves to a PGN move string.

    E.g., ['e4', 'e5', 'Nf3', 'Nc6'] -> '1.e4 e5 2.Nf3 Nc6'
    """
    if not moves:
        return ""

    parts = []
    for i, move in enumerate(moves):
        if i % 2 == 0:
            parts.append(f"{i // 2 + 1}.{move}")
        else:
            parts.append(move)

    return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation schemas (dict-based)
# ---------------------------------------------------------------------------

SESSION_STATE_SCHEMA = {
    "session_id": str,
    "fen": str,
    "orientation": str,
    "mode": str,
    "turn_state": str,
    "last_outcome": (str, type(None)),
    "last_move_san": (str, type(None)),
    "move_list": str,
    "line": str,
    "off_book": bool,
    "book_moves": int,
}

BOOK_MOVES_SCHEMA = {
    "session_id": str,
    "line": str,
    "book_moves": list,
}

ERROR_SCHEMA = {
    "error": str,
}


def validate_response(response: dict, schema: dict) -> list[str]:
    """Validate a response dict against a schema.

    Only runs when OPENING_TRAINER_VALIDATE=1 env var is set.

    Args:
        response: Response dict to validate.
        schema: Dict mapping key names to expected types (or tuple of types).

    Returns:
        List of validation error strings (empty = valid).
    """
    if os.environ.get("OPENING_TRAINER_VALIDATE") != "1":
        return []

    errors = []

    if not isinstance(response, dict):
        errors.append(f"Response is not a dict: {type(response).__name__}")
        return errors

    for key, expected_types in schema.items():
        if key not in response:
            errors.append(f"Missing key: {key}")
            continue

        value = response[key]
        if isinstance(expected_types, tuple):
            if not isinstance(value, expected_types):
                type_names = ", ".join(t.__name__ for t in expected_types)
                errors.append(
                    f"Key '{key}': expected ({type_names}), "
                    f"got {type(value).__name__}"
                )
        elif not isinstance(value, expected_types):
            errors.append(
                f"Key '{key}': expected {expected_types.__name__}, "
                f"got {type(value).__name__}"
            )

    return errors
