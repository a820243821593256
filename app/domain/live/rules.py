# app/domain/live/rules.py
from __future__ import annotations

import re
from typing import Tuple, Union

from app.domain.common.errors import InvalidInput
from app.store.models import LiveUser
from app.transport.protocols import InMoveAbsolute, InMoveDelta

# Canvas coordinates are percentages
POS_MIN = 0
POS_MAX = 100

_COLOR_RE = re.compile(r"#[0-9a-fA-F]{6}")


def clamp_pos(value: float) -> int:
    return max(POS_MIN, min(POS_MAX, round(value)))


def validate_color(color: str) -> str:
    if not isinstance(color, str) or not _COLOR_RE.fullmatch(color):
        raise InvalidInput(f"Invalid color: {color!r}")
    return color


def apply_move(user: LiveUser, move: Union[InMoveDelta, InMoveAbsolute]) -> Tuple[int, int]:
    """
    Apply a validated move to the user and return the new (x, y).
    Coordinates are rounded and clamped, never rejected.
    """
    if isinstance(move, InMoveAbsolute):
        x, y = move.x, move.y
    else:
        x, y = user.x + move.dx, user.y + move.dy

    user.x = clamp_pos(x)
    user.y = clamp_pos(y)
    return user.x, user.y
