# app/transport/ws.py
from __future__ import annotations

import ipaddress
import json
import uuid
from urllib.parse import urlparse

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.domain.common.types import MODES
from app.settings import get_settings
from app.transport.dispatcher import dispatch_message, handle_disconnect
from app.transport.protocols import OutError, OutHello
from app.transport.ws_manager import Session

router = APIRouter()
logger = structlog.get_logger()


def _is_private_ip(host: str) -> bool:
    """Return True if host is a private IP (192.168.x.x, 10.x.x.x, 172.16-31.x.x)."""
    try:
        ip = ipaddress.ip_address(host)
        return ip.is_private
    except ValueError:
        return False


async def _check_origin_or_close(websocket: WebSocket) -> bool:
    settings = get_settings()
    allowed = {o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()}

    origin = websocket.headers.get("origin")
    if origin is not None:
        if origin in allowed:
            return True
        if settings.WS_ALLOW_LAN_ORIGINS:
            o = urlparse(origin)
            host = o.hostname or ""
            port = o.port
            if _is_private_ip(host) and port == 5173:
                return True
            await websocket.close(code=1008)
            return False
        await websocket.close(code=1008)
        return False
    return True


@router.websocket("/ws/{mode}")
async def ws_mode(websocket: WebSocket, mode: str):
    if mode not in MODES:
        await websocket.close(code=1008)
        return
    if not await _check_origin_or_close(websocket):
        return

    await websocket.accept()

    app = websocket.app
    wsman = app.state.wsman
    gateway = app.state.gateway

    session = Session(conn_id=uuid.uuid4().hex[:10], mode=mode)
    wsman.add(session, websocket)
    wsman.send_to(session.conn_id, OutHello(id=session.conn_id, mode=mode).dump())
    logger.info("ws connected", conn_id=session.conn_id, mode=mode)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                raw = json.loads(text)
            except ValueError:
                wsman.send_to(session.conn_id, OutError(code="BAD_MESSAGE", message="Invalid JSON").dump())
                continue

            to_sender, to_room, room_id = await dispatch_message(app=app, session=session, raw=raw)

            # no await from here on: events queue in the order the room changed
            for e in to_sender:
                wsman.send_to(session.conn_id, e)

            # the sender may just have entered a room: index it before fan-out
            wsman.sync(session)
            if to_room and room_id:
                gateway.publish(mode, room_id, to_room)

    except WebSocketDisconnect:
        logger.info("ws disconnected", conn_id=session.conn_id, mode=mode)

    finally:
        try:
            _, to_room, room_id = await handle_disconnect(app=app, session=session)
        finally:
            wsman.remove(session.conn_id)
        if to_room and room_id:
            gateway.publish(mode, room_id, to_room)
