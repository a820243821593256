"""
Handlers against the app.state built by init_state: real PhaseTimers on every repo.
"""
from types import SimpleNamespace

import pytest

from app.domain.chess import handle_chess_create_room, handle_chess_join_room, handle_chess_leave
from app.domain.live import handle_live_create_room, handle_live_join_room, handle_live_leave
from app.domain.spy import (
    handle_spy_create_lobby,
    handle_spy_join_lobby,
    handle_spy_leave,
    handle_spy_reset_game,
    handle_spy_start_game,
)
from app.main import init_state
from app.settings import Settings
from app.transport.protocols import parse_incoming
from app.transport.ws_manager import Session


def wired_app():
    app = SimpleNamespace(state=SimpleNamespace())
    init_state(app, Settings())
    return app


@pytest.mark.asyncio
async def test_live_last_leave_deletes_room():
    app = wired_app()
    a = Session(conn_id="a", mode="live")
    b = Session(conn_id="b", mode="live")
    await handle_live_create_room(app=app, session=a, msg=parse_incoming("live", {"type": "createRoom"}))
    room_id = a.room_id
    await handle_live_join_room(app=app, session=b, msg=parse_incoming("live", {"type": "joinRoom", "roomId": room_id}))

    _, to_room = await handle_live_leave(app=app, session=a)
    assert [e.type for e in to_room] == ["userLeft"]

    assert await handle_live_leave(app=app, session=b) == ([], [])
    assert app.state.live_repo.get_room(room_id) is None


@pytest.mark.asyncio
async def test_chess_room_goes_once_both_players_leave():
    app = wired_app()
    white = Session(conn_id="w", mode="chess")
    black = Session(conn_id="b", mode="chess")
    await handle_chess_create_room(app=app, session=white, msg=parse_incoming("chess", {"type": "createRoom"}))
    room_id = white.room_id
    await handle_chess_join_room(app=app, session=black, msg=parse_incoming("chess", {"type": "joinRoom", "roomId": room_id}))

    await handle_chess_leave(app=app, session=white)
    assert app.state.chess_repo.get_room(room_id) is not None

    assert await handle_chess_leave(app=app, session=black) == ([], [])
    assert app.state.chess_repo.get_room(room_id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("repo_name", ["chess_repo", "live_repo"])
async def test_force_close_chess_and_live_rooms(repo_name):
    app = wired_app()
    repo = getattr(app.state, repo_name)
    room = repo.create_room("p1", "Ann")

    async with room.lock:
        assert repo.delete_room(room.id) is room

    assert repo.list_rooms() == []
    assert room.timer is None


@pytest.mark.asyncio
async def test_ended_spy_room_survives_until_reset_or_empty():
    app = wired_app()
    spy = app.state.spy
    repo = app.state.spy_repo
    sessions = [Session(conn_id=f"c{i}", mode="spy") for i in range(4)]
    await handle_spy_create_lobby(app=app, session=sessions[0], msg=parse_incoming("spy", {"type": "createLobby"}))
    room_id = sessions[0].room_id
    for s in sessions[1:]:
        await handle_spy_join_lobby(app=app, session=s, msg=parse_incoming("spy", {"type": "joinLobby", "roomId": room_id}))

    await handle_spy_start_game(app=app, session=sessions[0], msg=parse_incoming("spy", {"type": "startGame"}))
    room = repo.get_room(room_id)
    assert room.timer is not None

    # run the timed transitions by hand; nobody votes so the spy wins
    async with room.lock:
        spy.begin_voting(room)
        spy.resolve_votes(room)
    assert room.phase == "ended"
    assert room.timer is None

    leaver = next(s for s in sessions[1:] if s.conn_id != room.host_id)
    _, to_room = await handle_spy_leave(app=app, session=leaver)
    assert repo.get_room(room_id) is room
    assert room.phase == "ended"
    assert to_room[-1].type == "roomState"

    await handle_spy_reset_game(app=app, session=sessions[0], msg=parse_incoming("spy", {"type": "resetGame"}))
    assert room.phase == "lobby"

    for s in sessions:
        await handle_spy_leave(app=app, session=s)
    assert repo.get_room(room_id) is None
    assert repo.list_rooms() == []
