# app/transport/ws_manager.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

import structlog
from fastapi import WebSocket

from app.domain.common.types import Mode

logger = structlog.get_logger()

RoomKey = Tuple[str, str]  # (mode, room_id)


@dataclass
class Session:
    """
    Per-connection state. A connection belongs to one mode and at most one room.
    Handlers set room_id; the manager indexes it on sync().
    """
    conn_id: str
    mode: Mode
    room_id: Optional[str] = None


@dataclass(frozen=True)
class CloseFrame:
    code: int = 1000


@dataclass
class Conn:
    session: Session
    ws: WebSocket
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    writer: Optional[asyncio.Task] = None


class WSManager:
    """
    In-memory connection registry.
    - conn_id -> connection
    - (mode, room_id) -> conn_ids joined to that room
    Transport-only: no domain rules.

    Every method that touches the tables is synchronous, and sending only
    enqueues onto the connection's outbox; one writer task per connection
    drains it. Events published without an await in between keep their order
    on every socket.
    """
    def __init__(self) -> None:
        self._conns: Dict[str, Conn] = {}
        self._rooms: Dict[RoomKey, Set[str]] = {}
        self._joined: Dict[str, RoomKey] = {}

    def add(self, session: Session, ws: WebSocket) -> Conn:
        conn = Conn(session=session, ws=ws)
        conn.writer = asyncio.get_running_loop().create_task(self._writer(conn))
        self._conns[session.conn_id] = conn
        return conn

    def remove(self, conn_id: str) -> None:
        """Forget a connection whose socket is gone; unsent events are dropped."""
        conn = self._conns.pop(conn_id, None)
        self._unindex(conn_id)
        if conn is not None and conn.writer is not None and not conn.writer.done():
            conn.writer.cancel()

    def sync(self, session: Session) -> None:
        """Make the room index match session.room_id."""
        if session.conn_id not in self._conns:
            return
        key = (session.mode, session.room_id) if session.room_id else None
        if self._joined.get(session.conn_id) == key:
            return
        self._unindex(session.conn_id)
        if key is not None:
            self._rooms.setdefault(key, set()).add(session.conn_id)
            self._joined[session.conn_id] = key

    def _unindex(self, conn_id: str) -> None:
        key = self._joined.pop(conn_id, None)
        if key is None:
            return
        members = self._rooms.get(key)
        if members is None:
            return
        members.discard(conn_id)
        if not members:
            self._rooms.pop(key, None)

    def send_to(self, conn_id: str, event: Dict[str, Any]) -> None:
        conn = self._conns.get(conn_id)
        if conn is None:
            return
        conn.outbox.put_nowait(event)

    def broadcast(self, mode: str, room_id: str, event: Dict[str, Any]) -> None:
        for conn_id in self._rooms.get((mode, room_id), ()):
            self.send_to(conn_id, event)

    def detach_room(self, mode: str, room_id: str) -> List[Conn]:
        """
        Forget a deleted room: its sessions go back to "no room".
        Returns the detached connections.
        """
        conns = []
        for conn_id in self._rooms.pop((mode, room_id), set()):
            self._joined.pop(conn_id, None)
            conn = self._conns.get(conn_id)
            if conn is None:
                continue
            conn.session.room_id = None
            conns.append(conn)
        return conns

    def close_room(self, mode: str, room_id: str, code: int = 4000) -> int:
        """Detach a room and close its sockets once their pending events are sent."""
        conns = self.detach_room(mode, room_id)
        for c in conns:
            c.outbox.put_nowait(CloseFrame(code))
        return len(conns)

    def room_size(self, mode: str, room_id: str) -> int:
        return len(self._rooms.get((mode, room_id), ()))

    def connection_count(self) -> int:
        return len(self._conns)

    async def _writer(self, conn: Conn) -> None:
        conn_id = conn.session.conn_id
        while True:
            item = await conn.outbox.get()
            try:
                if isinstance(item, CloseFrame):
                    await conn.ws.close(code=item.code)
                    return
                await conn.ws.send_json(item)
            except Exception as e:
                # dead socket; ws.py cleans up on disconnect
                logger.debug("send failed", conn_id=conn_id, error=str(e))
                return
