from __future__ import annotations

from .handlers import (
    handle_live_create_room,
    handle_live_join_room,
    handle_live_set_color,
    handle_live_set_name,
    handle_live_move,
    handle_live_get_state,
    handle_live_leave,
)

__all__ = [
    "handle_live_create_room",
    "handle_live_join_room",
    "handle_live_set_color",
    "handle_live_set_name",
    "handle_live_move",
    "handle_live_get_state",
    "handle_live_leave",
]
