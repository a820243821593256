# app/domain/common/types.py
from __future__ import annotations

from typing import Literal

Mode = Literal["spy", "chess", "live"]
MODES: tuple[Mode, ...] = ("spy", "chess", "live")

Phase = Literal["lobby", "assigning", "discussion", "voting", "ended"]
ACTIVE_PHASES: tuple[Phase, ...] = ("discussion", "voting")

Winner = Literal["spy", "players"]
CardType = Literal["spy", "real"]
ChessColor = Literal["white", "black"]
