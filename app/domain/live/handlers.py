from __future__ import annotations

from typing import Optional, Union

import structlog

from app.domain.common.errors import GameError, NotFound
from app.domain.common.events import Result, ack_fail, ack_ok
from app.domain.live.rules import apply_move, validate_color
from app.store.models import LiveRoom
from app.store.room_repo import clean_name
from app.transport.protocols import (
    InCreateRoom,
    InGetState,
    InJoinRoom,
    InMoveAbsolute,
    InMoveDelta,
    InSetColor,
    InSetName,
    OutLiveRoomState,
    OutUserJoined,
    OutUserLeft,
    OutUserMoved,
    OutUserUpdated,
)
from app.util.timeutil import now_ts

logger = structlog.get_logger()


def _state(room: LiveRoom, you_id: str) -> dict:
    users = room.users_public()
    return {"you": users.get(you_id), "users": users, "roomId": room.id}


def _current_room(app, session) -> Optional[LiveRoom]:
    return app.state.live_repo.get_room(session.room_id)


async def handle_live_create_room(*, app, session, msg: InCreateRoom) -> Result:
    room = app.state.live_repo.create_room(session.conn_id, msg.username)
    session.room_id = room.id

    me = room.users[session.conn_id]
    return ack_ok(msg, roomId=room.id, state=_state(room, session.conn_id)), [OutUserJoined(user=me.public())]


async def handle_live_join_room(*, app, session, msg: InJoinRoom) -> Result:
    repo = app.state.live_repo

    room = repo.get_room(msg.room_id)
    if room is None:
        return ack_fail(msg, NotFound("Room not found")), []

    async with room.lock:
        try:
            if not repo.has_room(room):
                raise NotFound("Room not found")
            repo.join_room(room.id, session.conn_id, msg.username)
        except GameError as e:
            return ack_fail(msg, e), []
        session.room_id = room.id
        state = _state(room, session.conn_id)
        events = [
            OutUserJoined(user=state["you"]),
            OutLiveRoomState(room_id=room.id, users=state["users"]),
        ]

    return ack_ok(msg, roomId=room.id, state=state), events


async def handle_live_set_color(*, app, session, msg: InSetColor) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        user = room.users.get(session.conn_id)
        if user is None:
            return [], []
        try:
            user.color = validate_color(msg.color)
        except GameError as e:
            logger.debug("setColor dropped", room_id=room.id, pid=session.conn_id, reason=e.message)
            return [], []
        room.touch(now_ts())

    return [], [OutUserUpdated(id=session.conn_id, patch={"color": user.color})]


async def handle_live_set_name(*, app, session, msg: InSetName) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        user = room.users.get(session.conn_id)
        if user is None:
            return [], []
        user.name = clean_name(msg.name, app.state.live_repo.name_max_len)
        room.touch(now_ts())

    return [], [OutUserUpdated(id=session.conn_id, patch={"name": user.name})]


async def handle_live_move(*, app, session, msg: Union[InMoveDelta, InMoveAbsolute]) -> Result:
    room = _current_room(app, session)
    if room is None:
        return [], []

    async with room.lock:
        user = room.users.get(session.conn_id)
        if user is None:
            return [], []
        x, y = apply_move(user, msg)
        room.touch(now_ts())

    return [], [OutUserMoved(id=session.conn_id, x=x, y=y)]


async def handle_live_get_state(*, app, session, msg: InGetState) -> Result:
    room = _current_room(app, session)
    if room is None:
        return ack_fail(msg, NotFound("Not in room")), []

    async with room.lock:
        state = _state(room, session.conn_id)

    return ack_ok(msg, state=state), []


async def handle_live_leave(*, app, session) -> Result:
    repo = app.state.live_repo

    room = _current_room(app, session)
    session.room_id = None
    if room is None:
        return [], []

    async with room.lock:
        if not repo.has_room(room):
            return [], []
        _, deleted = repo.leave_room(room.id, session.conn_id)

    if deleted:
        return [], []
    return [], [OutUserLeft(id=session.conn_id)]
