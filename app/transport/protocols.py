from __future__ import annotations

from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from app.domain.common.types import Mode, Phase, Winner


# =========================
# Incoming (Client -> Server)
# =========================

class InBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    # Optional response channel: when set, the handler answers exactly once
    # with an "ack" event (only for message types that have a reply).
    ack: Optional[int] = None


# ---- Spy ----

class InCreateLobby(InBase):
    type: Literal["createLobby"] = "createLobby"
    username: Optional[str] = Field(default=None, max_length=200)


class InJoinLobby(InBase):
    type: Literal["joinLobby"] = "joinLobby"
    room_id: str = Field(min_length=1, max_length=32)
    username: Optional[str] = Field(default=None, max_length=200)


class InStartGame(InBase):
    type: Literal["startGame"] = "startGame"


class InCastVote(InBase):
    type: Literal["castVote"] = "castVote"
    target_id: str = Field(min_length=1, max_length=64)


class InResetGame(InBase):
    type: Literal["resetGame"] = "resetGame"


# ---- Chess / Live (shared room entry) ----

class InCreateRoom(InBase):
    type: Literal["createRoom"] = "createRoom"
    username: Optional[str] = Field(default=None, max_length=200)


class InJoinRoom(InBase):
    type: Literal["joinRoom"] = "joinRoom"
    room_id: str = Field(min_length=1, max_length=32)
    username: Optional[str] = Field(default=None, max_length=200)


# ---- Chess ----

class InMakeMove(InBase):
    type: Literal["makeMove"] = "makeMove"
    room_id: Optional[str] = None
    from_square: str = Field(alias="from", min_length=2, max_length=2)
    to_square: str = Field(alias="to", min_length=2, max_length=2)
    promotion: Optional[str] = Field(default=None, max_length=1)


# ---- Live ----

class InSetColor(InBase):
    type: Literal["setColor"] = "setColor"
    color: str = Field(max_length=32)


class InSetName(InBase):
    type: Literal["setName"] = "setName"
    name: Optional[str] = Field(default=None, max_length=200)


class InMoveDelta(InBase):
    """Relative movement, in percent of the canvas."""
    type: Literal["move"] = "move"
    kind: Literal["delta"] = "delta"
    dx: float = Field(allow_inf_nan=False)
    dy: float = Field(allow_inf_nan=False)


class InMoveAbsolute(InBase):
    """Absolute position, in percent of the canvas."""
    type: Literal["move"] = "move"
    kind: Literal["absolute"] = "absolute"
    x: float = Field(allow_inf_nan=False)
    y: float = Field(allow_inf_nan=False)


class InGetState(InBase):
    type: Literal["getState"] = "getState"


InMove = Annotated[Union[InMoveDelta, InMoveAbsolute], Field(discriminator="kind")]
_MOVE_ADAPTER: TypeAdapter = TypeAdapter(InMove)


IncomingMessage = Union[
    InCreateLobby,
    InJoinLobby,
    InStartGame,
    InCastVote,
    InResetGame,
    InCreateRoom,
    InJoinRoom,
    InMakeMove,
    InSetColor,
    InSetName,
    InMoveDelta,
    InMoveAbsolute,
    InGetState,
]

# Message types accepted by each namespace
_INCOMING_BY_MODE: Dict[str, Dict[str, Callable[[Dict[str, Any]], IncomingMessage]]] = {
    "spy": {
        "createLobby": InCreateLobby.model_validate,
        "joinLobby": InJoinLobby.model_validate,
        "startGame": InStartGame.model_validate,
        "castVote": InCastVote.model_validate,
        "resetGame": InResetGame.model_validate,
    },
    "chess": {
        "createRoom": InCreateRoom.model_validate,
        "joinRoom": InJoinRoom.model_validate,
        "makeMove": InMakeMove.model_validate,
    },
    "live": {
        "createRoom": InCreateRoom.model_validate,
        "joinRoom": InJoinRoom.model_validate,
        "setColor": InSetColor.model_validate,
        "setName": InSetName.model_validate,
        "move": _MOVE_ADAPTER.validate_python,
        "getState": InGetState.model_validate,
    },
}


def parse_incoming(mode: str, payload: Dict[str, Any]) -> IncomingMessage:
    """
    Convert raw dict -> validated message model for the given namespace.
    Raises ValidationError (a ValueError) if invalid.
    """
    if not isinstance(payload, dict):
        raise ValueError("Message must be a JSON object")

    t = payload.get("type")
    if not isinstance(t, str):
        raise ValueError("Missing/invalid type")

    validate = _INCOMING_BY_MODE.get(mode, {}).get(t)
    if validate is None:
        raise ValueError(f"Unknown message type: {t}")

    return validate(payload)


# =========================
# Outgoing (Server -> Client)
# =========================

class OutBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class OutError(OutBase):
    type: Literal["error"] = "error"
    code: str
    message: str


class OutHello(OutBase):
    type: Literal["hello"] = "hello"
    id: str
    mode: Mode


class OutAck(OutBase):
    """
    Reply on the response channel. Extra keyword fields are passed through
    as-is, e.g. OutAck(ack=1, ok=True, roomId="abc123").
    """
    model_config = ConfigDict(extra="allow")

    type: Literal["ack"] = "ack"
    ack: Optional[int] = None
    ok: bool
    error: Optional[str] = None
    code: Optional[str] = None

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ---- Spy ----

class OutRoomState(OutBase):
    type: Literal["roomState"] = "roomState"
    id: str
    host_id: str
    players: List[Dict[str, Any]]
    spectators: List[Dict[str, Any]]
    phase: Phase
    round: int
    phase_ends_at: Optional[int] = None


class OutYourCard(OutBase):
    """Private: only ever delivered to the card owner."""
    type: Literal["yourCard"] = "yourCard"
    card: Dict[str, str]  # {"type": "spy"|"real", "word": ...}


class OutPlayerKicked(OutBase):
    type: Literal["playerKicked"] = "playerKicked"
    username: str


class OutGameResult(OutBase):
    type: Literal["gameResult"] = "gameResult"
    winner: Winner
    spy: Optional[str] = None
    kicked: Optional[str] = None


# ---- Chess ----

class OutRoomUpdate(OutBase):
    type: Literal["roomUpdate"] = "roomUpdate"
    id: str
    players: List[Dict[str, Any]]
    fen: str


class OutMovePlayed(OutBase):
    type: Literal["movePlayed"] = "movePlayed"
    move: Dict[str, Any]
    fen: str


# ---- Live ----

class OutUserJoined(OutBase):
    type: Literal["userJoined"] = "userJoined"
    user: Dict[str, Any]


class OutLiveRoomState(OutBase):
    type: Literal["roomState"] = "roomState"
    room_id: str
    users: Dict[str, Dict[str, Any]]


class OutUserUpdated(OutBase):
    type: Literal["userUpdated"] = "userUpdated"
    id: str
    patch: Dict[str, Any]


class OutUserMoved(OutBase):
    type: Literal["userMoved"] = "userMoved"
    id: str
    x: int
    y: int


class OutUserLeft(OutBase):
    type: Literal["userLeft"] = "userLeft"
    id: str


OutgoingEvent = Union[
    OutError,
    OutHello,
    OutAck,
    OutRoomState,
    OutYourCard,
    OutPlayerKicked,
    OutGameResult,
    OutRoomUpdate,
    OutMovePlayed,
    OutUserJoined,
    OutLiveRoomState,
    OutUserUpdated,
    OutUserMoved,
    OutUserLeft,
]
