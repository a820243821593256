# app/transport/dispatcher.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from app.domain.chess import (
    handle_chess_create_room,
    handle_chess_join_room,
    handle_chess_leave,
    handle_chess_make_move,
)
from app.domain.common.errors import GameError
from app.domain.common.events import Result
from app.domain.live import (
    handle_live_create_room,
    handle_live_get_state,
    handle_live_join_room,
    handle_live_leave,
    handle_live_move,
    handle_live_set_color,
    handle_live_set_name,
)
from app.domain.spy import (
    handle_spy_cast_vote,
    handle_spy_create_lobby,
    handle_spy_join_lobby,
    handle_spy_leave,
    handle_spy_reset_game,
    handle_spy_start_game,
)
from app.transport.gateway import to_json
from app.transport.protocols import (
    InCastVote,
    InCreateLobby,
    InCreateRoom,
    InGetState,
    InJoinLobby,
    InJoinRoom,
    InMakeMove,
    InMoveAbsolute,
    InMoveDelta,
    InResetGame,
    InSetColor,
    InSetName,
    InStartGame,
    OutAck,
    OutError,
    parse_incoming,
)

logger = structlog.get_logger()

Handler = Callable[..., Awaitable[Result]]

# (to_sender_events, to_room_events, room_id the room events belong to)
DispatchResult = Tuple[List[Dict[str, Any]], List[Dict[str, Any]], Optional[str]]

_ROUTES: Dict[str, Dict[type, Handler]] = {
    "spy": {
        InCreateLobby: handle_spy_create_lobby,
        InJoinLobby: handle_spy_join_lobby,
        InStartGame: handle_spy_start_game,
        InCastVote: handle_spy_cast_vote,
        InResetGame: handle_spy_reset_game,
    },
    "chess": {
        InCreateRoom: handle_chess_create_room,
        InJoinRoom: handle_chess_join_room,
        InMakeMove: handle_chess_make_move,
    },
    "live": {
        InCreateRoom: handle_live_create_room,
        InJoinRoom: handle_live_join_room,
        InSetColor: handle_live_set_color,
        InSetName: handle_live_set_name,
        InMoveDelta: handle_live_move,
        InMoveAbsolute: handle_live_move,
        InGetState: handle_live_get_state,
    },
}

_LEAVE: Dict[str, Handler] = {
    "spy": handle_spy_leave,
    "chess": handle_chess_leave,
    "live": handle_live_leave,
}

# a connection is in at most one room; entering another one leaves the current first
_ROOM_ENTRY = (InCreateLobby, InJoinLobby, InCreateRoom, InJoinRoom)


def _bad_message(raw: Any, error: Exception) -> Dict[str, Any]:
    ack = raw.get("ack") if isinstance(raw, dict) else None
    if isinstance(ack, int) and not isinstance(ack, bool):
        return OutAck(ack=ack, ok=False, error=str(error), code="BAD_MESSAGE").dump()
    return OutError(code="BAD_MESSAGE", message=str(error)).dump()


async def dispatch_message(*, app, session, raw: Any) -> DispatchResult:
    """
    Transport layer calls this.
    - Parses + validates raw JSON for the session's namespace
    - Routes to the correct domain handler
    - Returns (to_sender, to_room, room_id) events as JSON dicts
    """
    try:
        msg = parse_incoming(session.mode, raw)
    except (ValidationError, ValueError) as e:
        logger.debug("bad message", conn_id=session.conn_id, mode=session.mode, error=str(e))
        return [_bad_message(raw, e)], [], None

    handler = _ROUTES[session.mode].get(type(msg))
    if handler is None:
        err = OutError(code="NOT_IMPLEMENTED", message=f"Handler not implemented for type={msg.type}")
        return [err.dump()], [], None

    if isinstance(msg, _ROOM_ENTRY) and session.room_id:
        await leave_current_room(app=app, session=session)

    prev_room_id = session.room_id
    try:
        to_sender, to_room = await handler(app=app, session=session, msg=msg)
    except GameError as e:
        logger.warning("handler error", conn_id=session.conn_id, type=msg.type, code=e.code, reason=e.message)
        return [OutError(code=e.code, message=e.message).dump()], [], None

    return _dump(to_sender), _dump(to_room), session.room_id or prev_room_id


async def handle_disconnect(*, app, session) -> DispatchResult:
    """Remove the connection from its room. Returns the leave events for that room."""
    room_id = session.room_id
    if not room_id:
        return [], [], None
    to_sender, to_room = await _LEAVE[session.mode](app=app, session=session)
    return _dump(to_sender), _dump(to_room), room_id


async def leave_current_room(*, app, session) -> None:
    """Leave the session's room and notify the members that stay."""
    try:
        _, to_room, room_id = await handle_disconnect(app=app, session=session)
    finally:
        # the leave handlers clear session.room_id first; keep the index in step even on failure
        app.state.wsman.sync(session)
    if to_room and room_id:
        app.state.gateway.publish(session.mode, room_id, to_room)


def _dump(events: List[Any]) -> List[Dict[str, Any]]:
    """
    Convert pydantic events -> JSON dicts.
    """
    return [to_json(e) for e in events]
