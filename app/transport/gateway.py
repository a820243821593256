from __future__ import annotations

from typing import Any, Dict, List

from app.transport.protocols import OutBase


def to_json(event: Any) -> Dict[str, Any]:
    """Outgoing model -> JSON dict. Dicts pass through untouched."""
    if isinstance(event, OutBase):
        return event.dump()
    return event


class BroadcastGateway:
    """
    Fan-out of room events.
    - dict with "targets": private, sent only to those connections
    - anything else: sent to every connection joined to the room
    publish() only enqueues, so callers run it right after the mutation
    (no await in between) and rooms see events in mutation order.
    """
    def __init__(self, wsman) -> None:
        self.wsman = wsman

    def publish(self, mode: str, room_id: str, events: List[Any]) -> None:
        for e in events:
            payload = to_json(e)
            if isinstance(payload, dict) and "targets" in payload:
                targets = payload.get("targets") or []
                body = {k: v for k, v in payload.items() if k != "targets"}
                for t in targets:
                    self.wsman.send_to(t, body)
                continue
            self.wsman.broadcast(mode, room_id, payload)
