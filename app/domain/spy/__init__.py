from __future__ import annotations

from .handlers import (
    handle_spy_create_lobby,
    handle_spy_join_lobby,
    handle_spy_start_game,
    handle_spy_cast_vote,
    handle_spy_reset_game,
    handle_spy_leave,
)
from .machine import SpyMachine, tally_votes

__all__ = [
    "handle_spy_create_lobby",
    "handle_spy_join_lobby",
    "handle_spy_start_game",
    "handle_spy_cast_vote",
    "handle_spy_reset_game",
    "handle_spy_leave",
    "SpyMachine",
    "tally_votes",
]
