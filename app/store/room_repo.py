from __future__ import annotations

import random
import string
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

import structlog

from app.domain.common.errors import NotFound, PreconditionFailed
from app.domain.common.types import Mode
from app.store.models import (
    ChessPlayer,
    ChessRoom,
    LiveRoom,
    LiveUser,
    RoomBase,
    SpyPlayer,
    SpyRoom,
    WordPair,
)
from app.util.timeutil import now_ms, now_ts

logger = structlog.get_logger()

R = TypeVar("R", bound=RoomBase)

ROOM_CODE_ALPHABET = string.ascii_lowercase + string.digits


def gen_room_code(n: int = 6) -> str:
    return "".join(random.choice(ROOM_CODE_ALPHABET) for _ in range(n))


def clean_name(raw: Any, max_len: int = 24, default: str = "Guest") -> str:
    name = str(raw or "").strip()[:max_len]
    return name or default


class RoomRepo(Generic[R]):
    """
    In-memory room table for one game mode (namespace isolation).
    - room_id -> room
    Plain dict operations only, so every call is atomic on the event loop.
    Callers hold room.lock around join/leave so they serialize with timers.
    """
    mode: Mode

    def __init__(self, *, timers=None, name_max_len: int = 24, code_len: int = 6) -> None:
        self._rooms: Dict[str, R] = {}
        self.timers = timers
        self.name_max_len = name_max_len
        self.code_len = code_len

    # ----------------------------
    # Helpers
    # ----------------------------
    def get_room(self, room_id: Optional[str]) -> Optional[R]:
        if not room_id:
            return None
        return self._rooms.get(room_id)

    def has_room(self, room: RoomBase) -> bool:
        """True while this exact room object is still registered."""
        return self._rooms.get(room.id) is room

    def list_rooms(self) -> List[R]:
        return list(self._rooms.values())

    def _new_code(self) -> str:
        # fresh at creation time only; no later re-check
        code = gen_room_code(self.code_len)
        for _ in range(5):
            if code not in self._rooms:
                break
            code = gen_room_code(self.code_len)
        return code

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def create_room(self, creator_id: str, username: Any, *, ts: Optional[int] = None) -> R:
        ts = ts if ts is not None else now_ts()
        code = self._new_code()
        room = self._build_room(code, creator_id, clean_name(username, self.name_max_len), ts)
        self._rooms[code] = room
        logger.info("room created", mode=self.mode, room_id=code, creator=creator_id)
        return room

    def join_room(self, room_id: str, joiner_id: str, username: Any, *, ts: Optional[int] = None) -> R:
        room = self.get_room(room_id)
        if room is None:
            raise NotFound("Room not found")
        self._check_join(room, joiner_id)
        self._add_member(room, joiner_id, clean_name(username, self.name_max_len))
        room.touch(ts if ts is not None else now_ts())
        logger.info("room joined", mode=self.mode, room_id=room.id, pid=joiner_id)
        return room

    def leave_room(self, room_id: Optional[str], connection_id: str, *, ts: Optional[int] = None) -> Tuple[Optional[R], bool]:
        """
        Returns (room, deleted). Room is None if it no longer exists.
        """
        room = self.get_room(room_id)
        if room is None:
            return None, False
        self._remove_member(room, connection_id)
        room.touch(ts if ts is not None else now_ts())
        if room.is_empty():
            self.delete_room(room.id)
            return room, True
        return room, False

    def delete_room(self, room_id: str) -> Optional[R]:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return None
        if self.timers is not None:
            self.timers.cancel(room)
        logger.info("room deleted", mode=self.mode, room_id=room_id)
        return room

    # ----------------------------
    # Mode hooks
    # ----------------------------
    def _build_room(self, code: str, creator_id: str, name: str, ts: int) -> R:
        raise NotImplementedError

    def _check_join(self, room: R, joiner_id: str) -> None:
        return None

    def _add_member(self, room: R, joiner_id: str, name: str) -> None:
        raise NotImplementedError

    def _remove_member(self, room: R, connection_id: str) -> None:
        raise NotImplementedError


class SpyRoomRepo(RoomRepo[SpyRoom]):
    mode: Mode = "spy"

    def __init__(self, *, pair_factory: Callable[[], WordPair], **kwargs) -> None:
        super().__init__(**kwargs)
        self.pair_factory = pair_factory

    def _build_room(self, code: str, creator_id: str, name: str, ts: int) -> SpyRoom:
        return SpyRoom(
            id=code,
            created_at=ts,
            last_activity=ts,
            host_id=creator_id,
            players=[SpyPlayer(id=creator_id, username=name)],
            pair=self.pair_factory(),
        )

    def _check_join(self, room: SpyRoom, joiner_id: str) -> None:
        if room.phase != "lobby":
            raise PreconditionFailed("Game already started")

    def _add_member(self, room: SpyRoom, joiner_id: str, name: str) -> None:
        room.players.append(SpyPlayer(id=joiner_id, username=name))

    def _remove_member(self, room: SpyRoom, connection_id: str) -> None:
        room.remove(connection_id)
        # votes already cast by this participant stay in the tally
        if room.host_id == connection_id:
            heirs = room.players + room.spectators
            if heirs:
                room.host_id = heirs[0].id
                logger.info("host handed off", room_id=room.id, host_id=room.host_id)


class ChessRoomRepo(RoomRepo[ChessRoom]):
    mode: Mode = "chess"

    def __init__(self, *, engine_factory: Callable[[], Any], **kwargs) -> None:
        super().__init__(**kwargs)
        self.engine_factory = engine_factory

    def _build_room(self, code: str, creator_id: str, name: str, ts: int) -> ChessRoom:
        engine = self.engine_factory()
        return ChessRoom(
            id=code,
            created_at=ts,
            last_activity=ts,
            players=[ChessPlayer(id=creator_id, username=name, color="white")],
            engine=engine,
            fen=engine.fen(),
        )

    def _check_join(self, room: ChessRoom, joiner_id: str) -> None:
        if len(room.players) >= 2:
            raise PreconditionFailed("Room full")

    def _add_member(self, room: ChessRoom, joiner_id: str, name: str) -> None:
        taken = {p.color for p in room.players}
        color = "black" if "white" in taken else "white"
        room.players.append(ChessPlayer(id=joiner_id, username=name, color=color))

    def _remove_member(self, room: ChessRoom, connection_id: str) -> None:
        # seat and board are kept for the rest of the game
        player = room.find(connection_id)
        if player is not None:
            player.connected = False


class LiveRoomRepo(RoomRepo[LiveRoom]):
    mode: Mode = "live"

    def _build_room(self, code: str, creator_id: str, name: str, ts: int) -> LiveRoom:
        room = LiveRoom(id=code, created_at=ts, last_activity=ts)
        self._add_member(room, creator_id, name)
        return room

    def _add_member(self, room: LiveRoom, joiner_id: str, name: str) -> None:
        room.users[joiner_id] = LiveUser(
            id=joiner_id,
            name=name,
            x=random.randint(10, 89),
            y=random.randint(10, 89),
            connected_at=now_ms(),
        )

    def _remove_member(self, room: LiveRoom, connection_id: str) -> None:
        room.users.pop(connection_id, None)
