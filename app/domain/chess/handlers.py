from __future__ import annotations

import structlog

from app.domain.common.errors import GameError, InvalidInput, NotFound
from app.domain.common.events import Result, ack_fail, ack_ok
from app.store.models import ChessRoom
from app.transport.protocols import InCreateRoom, InJoinRoom, InMakeMove, OutMovePlayed, OutRoomUpdate
from app.util.timeutil import now_ts

logger = structlog.get_logger()


def _room_update(room: ChessRoom) -> OutRoomUpdate:
    return OutRoomUpdate(id=room.id, players=[p.public() for p in room.players], fen=room.fen)


async def handle_chess_create_room(*, app, session, msg: InCreateRoom) -> Result:
    room = app.state.chess_repo.create_room(session.conn_id, msg.username)
    session.room_id = room.id

    return ack_ok(msg, roomId=room.id, color="white", fen=room.fen), [_room_update(room)]


async def handle_chess_join_room(*, app, session, msg: InJoinRoom) -> Result:
    repo = app.state.chess_repo

    room = repo.get_room(msg.room_id)
    if room is None:
        return ack_fail(msg, NotFound("Room not found")), []

    async with room.lock:
        try:
            if not repo.has_room(room):
                raise NotFound("Room not found")
            repo.join_room(room.id, session.conn_id, msg.username)
        except GameError as e:
            logger.info("join rejected", room_id=msg.room_id, pid=session.conn_id, code=e.code)
            return ack_fail(msg, e), []
        session.room_id = room.id
        me = room.find(session.conn_id)
        update = _room_update(room)

    return ack_ok(msg, roomId=room.id, color=me.color, fen=room.fen), [update]


async def handle_chess_make_move(*, app, session, msg: InMakeMove) -> Result:
    """
    Relay a move to the legality engine; broadcast the position only if it was legal.
    """
    repo = app.state.chess_repo

    room = repo.get_room(session.room_id)
    if room is None or (msg.room_id and msg.room_id != room.id):
        return ack_fail(msg, NotFound("Invalid room")), []

    async with room.lock:
        if not repo.has_room(room):
            return ack_fail(msg, NotFound("Invalid room")), []
        result = room.engine.move(msg.from_square, msg.to_square, msg.promotion)
        if not result:
            return ack_fail(msg, InvalidInput("Illegal move")), []
        room.fen = room.engine.fen()
        room.touch(now_ts())
        event = OutMovePlayed(move=result, fen=room.fen)

    logger.debug("move played", room_id=room.id, san=result.get("san"))
    return ack_ok(msg), [event]


async def handle_chess_leave(*, app, session) -> Result:
    """
    A leaving player keeps its seat (the game is not torn down mid-play);
    the room goes away once no seated player is connected.
    """
    repo = app.state.chess_repo

    room = repo.get_room(session.room_id)
    session.room_id = None
    if room is None:
        return [], []

    async with room.lock:
        if not repo.has_room(room):
            return [], []
        _, deleted = repo.leave_room(room.id, session.conn_id)
        if deleted:
            return [], []
        update = _room_update(room)

    return [], [update]
