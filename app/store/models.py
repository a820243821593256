from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from pydantic.alias_generators import to_camel

from app.domain.common.types import CardType, ChessColor, Mode, Phase


class StoreModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------
# Participants
# ----------------------------

class Card(StoreModel):
    type: CardType
    word: str


class WordPair(StoreModel):
    real: str
    spy: str


class SpyPlayer(StoreModel):
    id: str                       # connection id
    username: str
    card: Optional[Card] = None   # private; never part of a room snapshot

    def public(self) -> Dict[str, Any]:
        return {"id": self.id, "username": self.username}


class ChessPlayer(StoreModel):
    id: str
    username: str
    color: ChessColor
    connected: bool = True

    def public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class LiveUser(StoreModel):
    id: str
    name: str
    x: int
    y: int
    color: str = "#2c2c2c"
    connected_at: int = 0         # ms

    def public(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# ----------------------------
# Rooms
# ----------------------------

class RoomBase(StoreModel):
    """
    Shared room header. Each room owns exactly one lock; every mutation of the
    room (client action or timer) happens while holding it.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    mode: Mode
    created_at: int
    last_activity: int

    # pending phase timer handle; see PhaseTimers
    timer: Optional[Any] = Field(default=None, exclude=True)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    @property
    def lock(self) -> asyncio.Lock:
        return self._lock

    def touch(self, ts: int) -> None:
        self.last_activity = ts

    def member_count(self) -> int:
        raise NotImplementedError

    def is_empty(self) -> bool:
        return self.member_count() == 0


class SpyRoom(RoomBase):
    mode: Mode = "spy"
    host_id: str
    phase: Phase = "lobby"
    round: int = 1
    players: List[SpyPlayer] = Field(default_factory=list)
    spectators: List[SpyPlayer] = Field(default_factory=list)
    votes: Dict[str, str] = Field(default_factory=dict)  # voter -> target, cast order preserved
    spy_id: Optional[str] = None
    spy_name: Optional[str] = None
    pair: WordPair
    phase_ends_at: Optional[int] = None                  # ms

    def member_count(self) -> int:
        return len(self.players) + len(self.spectators)

    def in_roster(self, pid: Optional[str]) -> bool:
        return any(p.id == pid for p in self.players)

    def find(self, pid: Optional[str]) -> Optional[SpyPlayer]:
        for p in self.players + self.spectators:
            if p.id == pid:
                return p
        return None

    def eliminate(self, pid: str) -> Optional[SpyPlayer]:
        """Move a roster member to spectators (kept for result reporting)."""
        for i, p in enumerate(self.players):
            if p.id == pid:
                self.players.pop(i)
                self.spectators.append(p)
                return p
        return None

    def remove(self, pid: str) -> bool:
        before = self.member_count()
        self.players = [p for p in self.players if p.id != pid]
        self.spectators = [p for p in self.spectators if p.id != pid]
        return self.member_count() != before


class ChessRoom(RoomBase):
    mode: Mode = "chess"
    players: List[ChessPlayer] = Field(default_factory=list)
    fen: str = ""
    engine: Any = Field(default=None, exclude=True)

    def member_count(self) -> int:
        # disconnected players keep their seat but no longer count as members
        return sum(1 for p in self.players if p.connected)

    def find(self, pid: Optional[str]) -> Optional[ChessPlayer]:
        for p in self.players:
            if p.id == pid:
                return p
        return None


class LiveRoom(RoomBase):
    mode: Mode = "live"
    users: Dict[str, LiveUser] = Field(default_factory=dict)

    def member_count(self) -> int:
        return len(self.users)

    def users_public(self) -> Dict[str, Dict[str, Any]]:
        return {uid: u.public() for uid, u in self.users.items()}
