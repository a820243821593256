import pytest

from app.domain.common.errors import NotFound, PreconditionFailed
from app.domain.common.timers import PhaseTimers
from app.store.models import WordPair
from app.store.room_repo import (
    ROOM_CODE_ALPHABET,
    ChessRoomRepo,
    LiveRoomRepo,
    SpyRoomRepo,
    clean_name,
)


class FakeTimers:
    def __init__(self):
        self.cancelled = []

    def cancel(self, room):
        self.cancelled.append(room.id)
        room.timer = None


class FakeEngine:
    def fen(self):
        return "start-fen"


def make_spy_repo(timers=None):
    return SpyRoomRepo(pair_factory=lambda: WordPair(real="Airport", spy="Bus Station"), timers=timers)


def test_clean_name_truncates_and_defaults():
    assert clean_name("  Ann  ") == "Ann"
    assert clean_name("x" * 40) == "x" * 24
    assert clean_name("") == "Guest"
    assert clean_name(None) == "Guest"
    assert clean_name("abcdef", max_len=3) == "abc"


def test_create_room_code_and_creator():
    repo = make_spy_repo()
    room = repo.create_room("p1", "Ann", ts=100)

    assert len(room.id) == 6
    assert all(c in ROOM_CODE_ALPHABET for c in room.id)
    assert room.host_id == "p1"
    assert room.phase == "lobby"
    assert [p.id for p in room.players] == ["p1"]
    assert repo.get_room(room.id) is room
    assert room.created_at == 100


def test_join_unknown_room_raises():
    repo = make_spy_repo()
    with pytest.raises(NotFound):
        repo.join_room("nope00", "p2", "Bob")


def test_spy_join_after_start_rejected():
    repo = make_spy_repo()
    room = repo.create_room("p1", "Ann")
    room.phase = "discussion"
    with pytest.raises(PreconditionFailed):
        repo.join_room(room.id, "p2", "Bob")
    assert room.member_count() == 1


def test_spy_room_deleted_when_last_member_leaves():
    timers = FakeTimers()
    repo = make_spy_repo(timers)
    room = repo.create_room("p1", "Ann")
    repo.join_room(room.id, "p2", "Bob")

    _, deleted = repo.leave_room(room.id, "p1")
    assert deleted is False
    assert room.host_id == "p2"

    _, deleted = repo.leave_room(room.id, "p2")
    assert deleted is True
    assert repo.get_room(room.id) is None
    assert repo.has_room(room) is False
    assert timers.cancelled == [room.id]

    # unknown / already gone: no-op, counts never go negative
    assert repo.leave_room(room.id, "p2") == (None, False)
    assert room.member_count() == 0


def test_spy_leave_unknown_member_is_noop():
    repo = make_spy_repo()
    room = repo.create_room("p1", "Ann")
    _, deleted = repo.leave_room(room.id, "ghost")
    assert deleted is False
    assert room.member_count() == 1


def test_has_room_is_identity_based():
    repo = make_spy_repo()
    room = repo.create_room("p1", "Ann")
    repo.delete_room(room.id)
    other = repo.create_room("p2", "Bob")
    other_id = other.id
    assert repo.has_room(room) is False
    assert repo.has_room(other) is True
    assert repo.get_room(other_id) is other


def test_chess_seats_and_room_full():
    repo = ChessRoomRepo(engine_factory=FakeEngine)
    room = repo.create_room("w", "White")
    assert room.fen == "start-fen"
    assert room.players[0].color == "white"

    repo.join_room(room.id, "b", "Black")
    assert room.find("b").color == "black"

    with pytest.raises(PreconditionFailed) as exc:
        repo.join_room(room.id, "x", "Third")
    assert exc.value.message == "Room full"
    assert len(room.players) == 2


def test_chess_room_deleted_once_no_seated_player_connected():
    repo = ChessRoomRepo(engine_factory=FakeEngine)
    room = repo.create_room("w", "White")
    repo.join_room(room.id, "b", "Black")

    _, deleted = repo.leave_room(room.id, "w")
    assert deleted is False
    assert room.find("w").connected is False
    assert room.member_count() == 1

    _, deleted = repo.leave_room(room.id, "b")
    assert deleted is True
    assert repo.list_rooms() == []


def test_live_users_positions_and_leave():
    repo = LiveRoomRepo()
    room = repo.create_room("u1", "Ann")
    repo.join_room(room.id, "u2", "Bob")

    for u in room.users.values():
        assert 10 <= u.x <= 89
        assert 10 <= u.y <= 89

    _, deleted = repo.leave_room(room.id, "u1")
    assert deleted is False
    assert list(room.users) == ["u2"]

    _, deleted = repo.leave_room(room.id, "u2")
    assert deleted is True
    assert room.member_count() == 0


def test_ended_spy_room_lingers_until_everyone_leaves():
    repo = make_spy_repo()
    room = repo.create_room("p1", "Ann", ts=0)
    repo.join_room(room.id, "p2", "Bob", ts=0)
    room.phase = "ended"

    _, deleted = repo.leave_room(room.id, "p1")
    assert deleted is False
    assert repo.has_room(room)
    assert room.phase == "ended"

    _, deleted = repo.leave_room(room.id, "p2")
    assert deleted is True


def test_delete_room_with_real_timers_for_every_mode():
    timers = PhaseTimers()
    repos = [
        make_spy_repo(timers),
        ChessRoomRepo(engine_factory=FakeEngine, timers=timers),
        LiveRoomRepo(timers=timers),
    ]
    for repo in repos:
        room = repo.create_room("p1", "Ann")
        assert repo.delete_room(room.id) is room
        assert room.timer is None
        assert repo.list_rooms() == []
