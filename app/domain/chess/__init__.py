from __future__ import annotations

from .engine import MoveEngine, PythonChessEngine
from .handlers import (
    handle_chess_create_room,
    handle_chess_join_room,
    handle_chess_make_move,
    handle_chess_leave,
)

__all__ = [
    "MoveEngine",
    "PythonChessEngine",
    "handle_chess_create_room",
    "handle_chess_join_room",
    "handle_chess_make_move",
    "handle_chess_leave",
]
