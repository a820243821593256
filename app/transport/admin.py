from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from app.domain.common.types import MODES

router = APIRouter(prefix="/admin", tags=["admin"])


def _repos(request: Request):
    state = request.app.state
    return {"spy": state.spy_repo, "chess": state.chess_repo, "live": state.live_repo}


@router.get("/rooms")
async def list_rooms(request: Request):
    """
    List all active rooms (debug/admin).
    """
    rooms = []
    for mode, repo in _repos(request).items():
        for room in sorted(repo.list_rooms(), key=lambda r: r.id):
            entry = {
                "mode": mode,
                "room_id": room.id,
                "members": room.member_count(),
                "last_activity": room.last_activity,
                "created_at": room.created_at,
            }
            if mode == "spy":
                entry["phase"] = room.phase
                entry["round"] = room.round
            rooms.append(entry)

    return {"rooms": rooms}


@router.post("/rooms/{mode}/{room_id}/close")
async def close_room(mode: str, room_id: str, request: Request):
    """
    Force close a room (debug/admin). Cancels its timer and closes websockets.
    """
    if mode not in MODES:
        raise HTTPException(status_code=404, detail="Unknown mode")

    repo = _repos(request)[mode]
    room = repo.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    async with room.lock:
        repo.delete_room(room_id)

    closed = request.app.state.wsman.close_room(mode, room_id, code=4000)
    return {"ok": True, "mode": mode, "room_id": room_id, "closed": closed}
