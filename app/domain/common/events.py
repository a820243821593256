# app/domain/common/events.py
from __future__ import annotations

"""
Common event builders and helpers.
Events are defined in app/transport/protocols.py as OutgoingEvent types.
This file provides helper functions to create events consistently.
"""

from typing import Any, Dict, List, Tuple

from app.domain.common.errors import GameError
from app.transport.protocols import InBase, OutAck, OutBase

Outgoing = List[Any]
# Returns: (to_sender, to_room)
Result = Tuple[Outgoing, Outgoing]


def ack_ok(msg: InBase, **data: Any) -> Outgoing:
    """Success reply on the response channel, if the client opened one."""
    if msg.ack is None:
        return []
    return [OutAck(ack=msg.ack, ok=True, **data)]


def ack_fail(msg: InBase, err: GameError) -> Outgoing:
    if msg.ack is None:
        return []
    return [OutAck(ack=msg.ack, ok=False, error=err.message, code=err.code)]


def private(event: OutBase, *conn_ids: str) -> Dict[str, Any]:
    """
    Room event that the gateway delivers only to the given connections.
    """
    return {**event.dump(), "targets": list(conn_ids)}
