"""
WebSocket round-trips through FastAPI's TestClient.
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.main import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as c:
        yield c


def recv_until(ws, msg_type, max_messages=20):
    """Receive WS messages until we get the expected type."""
    for _ in range(max_messages):
        data = ws.receive_json()
        if data.get("type") == msg_type:
            return data
    raise TimeoutError(f"Never received {msg_type} after {max_messages} messages")


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["ok"] is True


def test_unknown_mode_is_refused(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/poker") as ws:
            ws.receive_json()


def test_hello_then_create_lobby(client):
    with client.websocket_connect("/ws/spy") as ws:
        hello = ws.receive_json()
        assert hello["type"] == "hello"
        assert hello["mode"] == "spy"

        ws.send_json({"type": "createLobby", "username": "Ann", "ack": 1})
        ack = ws.receive_json()
        assert ack["type"] == "ack"
        assert ack["ack"] == 1
        assert ack["ok"] is True

        state = ws.receive_json()
        assert state["type"] == "roomState"
        assert state["id"] == ack["roomId"]
        assert state["hostId"] == hello["id"]
        assert state["phase"] == "lobby"


def test_join_is_broadcast_to_room(client):
    with client.websocket_connect("/ws/spy") as host:
        recv_until(host, "hello")
        host.send_json({"type": "createLobby", "username": "Ann", "ack": 1})
        room_id = recv_until(host, "ack")["roomId"]
        recv_until(host, "roomState")

        with client.websocket_connect("/ws/spy") as guest:
            recv_until(guest, "hello")
            guest.send_json({"type": "joinLobby", "roomId": room_id, "username": "Bob", "ack": 2})
            assert recv_until(guest, "ack")["ok"] is True
            assert len(recv_until(guest, "roomState")["players"]) == 2

            seen_by_host = recv_until(host, "roomState")
            assert [p["username"] for p in seen_by_host["players"]] == ["Ann", "Bob"]

        # guest disconnected
        after = recv_until(host, "roomState")
        assert [p["username"] for p in after["players"]] == ["Ann"]


def test_bad_messages_answered_to_sender(client):
    with client.websocket_connect("/ws/spy") as ws:
        recv_until(ws, "hello")

        ws.send_text("not json")
        err = ws.receive_json()
        assert err == {"type": "error", "code": "BAD_MESSAGE", "message": "Invalid JSON"}

        ws.send_json({"type": "castVote", "ack": 5})
        ack = ws.receive_json()
        assert ack["type"] == "ack"
        assert ack["ok"] is False
        assert ack["code"] == "BAD_MESSAGE"

        ws.send_json({"type": "makeMove", "from": "e2", "to": "e4"})
        assert ws.receive_json()["code"] == "BAD_MESSAGE"


def test_chess_room_full_and_admin_close(client):
    with client.websocket_connect("/ws/chess") as white:
        recv_until(white, "hello")
        white.send_json({"type": "createRoom", "username": "W", "ack": 1})
        created = recv_until(white, "ack")
        assert created["color"] == "white"
        room_id = created["roomId"]

        with client.websocket_connect("/ws/chess") as black, client.websocket_connect("/ws/chess") as third:
            recv_until(black, "hello")
            black.send_json({"type": "joinRoom", "roomId": room_id, "ack": 2})
            assert recv_until(black, "ack")["color"] == "black"

            recv_until(third, "hello")
            third.send_json({"type": "joinRoom", "roomId": room_id, "ack": 3})
            refused = recv_until(third, "ack")
            assert refused["ok"] is False
            assert refused["error"] == "Room full"

            white.send_json({"type": "makeMove", "from": "e2", "to": "e4", "ack": 4})
            assert recv_until(white, "ack")["ok"] is True
            played = recv_until(black, "movePlayed")
            assert played["move"]["san"] == "e4"

            listing = client.get("/admin/rooms").json()["rooms"]
            assert [(r["mode"], r["room_id"]) for r in listing] == [("chess", room_id)]

            res = client.post(f"/admin/rooms/chess/{room_id}/close")
            assert res.json()["ok"] is True
            assert client.get("/admin/rooms").json()["rooms"] == []
            assert client.post(f"/admin/rooms/chess/{room_id}/close").status_code == 404


def test_live_cursor_flow(client):
    with client.websocket_connect("/ws/live") as a:
        recv_until(a, "hello")
        a.send_json({"type": "createRoom", "username": "Ann", "ack": 1})
        room_id = recv_until(a, "ack")["roomId"]

        a.send_json({"type": "move", "kind": "absolute", "x": 120, "y": 40.4})
        moved = recv_until(a, "userMoved")
        assert (moved["x"], moved["y"]) == (100, 40)

        a.send_json({"type": "getState", "ack": 2})
        state = recv_until(a, "ack")["state"]
        assert state["roomId"] == room_id
        assert state["you"]["x"] == 100


def test_live_admin_close_disconnects_members(client):
    with client.websocket_connect("/ws/live") as a:
        recv_until(a, "hello")
        a.send_json({"type": "createRoom", "username": "Ann", "ack": 1})
        room_id = recv_until(a, "ack")["roomId"]

        res = client.post(f"/admin/rooms/live/{room_id}/close")
        assert res.json() == {"ok": True, "mode": "live", "room_id": room_id, "closed": 1}

        with pytest.raises(WebSocketDisconnect) as exc:
            recv_until(a, "never")
        assert exc.value.code == 4000
    assert client.get("/health").json()["rooms"]["live"] == 0


def test_connection_forgotten_when_leave_fails(client, monkeypatch):
    import app.transport.ws as ws_module

    async def broken_disconnect(*, app, session):
        raise RuntimeError("boom")

    monkeypatch.setattr(ws_module, "handle_disconnect", broken_disconnect)

    with pytest.raises(RuntimeError):
        with client.websocket_connect("/ws/live") as a:
            recv_until(a, "hello")
            a.send_json({"type": "createRoom", "ack": 1})
            recv_until(a, "ack")
    assert client.app.state.wsman.connection_count() == 0
