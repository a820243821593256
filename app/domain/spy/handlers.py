from __future__ import annotations

from typing import Optional

import structlog

from app.domain.common.errors import GameError, NotFound
from app.domain.common.events import Result, ack_fail, ack_ok
from app.store.models import SpyRoom
from app.transport.protocols import (
    InCastVote,
    InCreateLobby,
    InJoinLobby,
    InResetGame,
    InStartGame,
)
from app.util.timeutil import now_ts

logger = structlog.get_logger()


def _current_room(app, session) -> Optional[SpyRoom]:
    return app.state.spy_repo.get_room(session.room_id)


# -------------------------
# Room entry (reply on the ack channel)
# -------------------------

async def handle_spy_create_lobby(*, app, session, msg: InCreateLobby) -> Result:
    repo = app.state.spy_repo
    machine = app.state.spy

    room = repo.create_room(session.conn_id, msg.username)
    session.room_id = room.id

    return ack_ok(msg, roomId=room.id), [machine.snapshot(room)]


async def handle_spy_join_lobby(*, app, session, msg: InJoinLobby) -> Result:
    repo = app.state.spy_repo
    machine = app.state.spy

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
        snapshot = machine.snapshot(room)

    return ack_ok(msg, roomId=room.id), [snapshot]


# -------------------------
# Game actions (no reply; rejected requests are dropped)
# -------------------------

async def handle_spy_start_game(*, app, session, msg: InStartGame) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        if not app.state.spy_repo.has_room(room):
            return [], []
        try:
            events = app.state.spy.start_game(room, session.conn_id)
        except GameError as e:
            logger.debug("startGame dropped", room_id=room.id, pid=session.conn_id, code=e.code, reason=e.message)
            return [], []
        room.touch(now_ts())

    return [], events


async def handle_spy_cast_vote(*, app, session, msg: InCastVote) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        if not app.state.spy_repo.has_room(room):
            return [], []
        try:
            events = app.state.spy.cast_vote(room, session.conn_id, msg.target_id)
        except GameError as e:
            logger.debug("castVote dropped", room_id=room.id, pid=session.conn_id, code=e.code, reason=e.message)
            return [], []
        room.touch(now_ts())

    return [], events


async def handle_spy_reset_game(*, app, session, msg: InResetGame) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        if not app.state.spy_repo.has_room(room):
            return [], []
        try:
            events = app.state.spy.reset_game(room, session.conn_id)
        except GameError as e:
            logger.debug("resetGame dropped", room_id=room.id, pid=session.conn_id, code=e.code, reason=e.message)
            return [], []
        room.touch(now_ts())

    return [], events


async def handle_spy_leave(*, app, session) -> Result:
    """
    Called by transport on disconnect, or before the session enters another room.
    Removes the participant; deletes the room (and its timer) once nobody is left.
    """
    room = _current_room(app, session)
    session.room_id = None
    if room is None:
        return [], []

    repo = app.state.spy_repo
    async with room.lock:
        if not repo.has_room(room):
            return [], []
        _, deleted = repo.leave_room(room.id, session.conn_id)
        if deleted:
            return [], []
        events = app.state.spy.after_leave(room, session.conn_id)

    return [], events
