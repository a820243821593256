from __future__ import annotations

import random
from typing import Dict, List, Optional, Sequence

import structlog

from app.domain.common.errors import Forbidden, InvalidInput, PreconditionFailed
from app.domain.common.events import Outgoing, private
from app.domain.common.types import ACTIVE_PHASES, Winner
from app.store.models import Card, SpyRoom, WordPair
from app.transport.protocols import OutGameResult, OutPlayerKicked, OutRoomState, OutYourCard
from app.util.timeutil import now_ms

logger = structlog.get_logger()

WORD_PAIRS: List[WordPair] = [
    WordPair(real="Airport", spy="Bus Station"),
    WordPair(real="Hospital", spy="Clinic"),
    WordPair(real="School", spy="Library"),
    WordPair(real="Beach", spy="Desert"),
    WordPair(real="Restaurant", spy="Kitchen"),
]


def tally_votes(votes: Dict[str, str]) -> Optional[str]:
    """
    Pick the target with the strictly highest count.
    Ties go to the target whose first vote came earliest: counts keep
    first-vote order and a later target never replaces an equal leader.
    """
    counts: Dict[str, int] = {}
    for target in votes.values():
        counts[target] = counts.get(target, 0) + 1

    leader: Optional[str] = None
    best = 0
    for target, n in counts.items():
        if n > best:
            leader, best = target, n
    return leader


class SpyMachine:
    """
    Phase state machine of the spy game:
      lobby -> assigning -> discussion -> voting -> (discussion | ended)

    Every method runs under room.lock and only touches memory. It returns the
    events to fan out (room-wide models, or private dicts with "targets").
    Rule violations raise GameError; callers drop them.
    """

    def __init__(
        self,
        *,
        repo,
        timers,
        discussion_sec: float = 120,
        voting_sec: float = 60,
        min_players: int = 3,
        word_pairs: Optional[Sequence[WordPair]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.repo = repo
        self.timers = timers
        self.discussion_sec = discussion_sec
        self.voting_sec = voting_sec
        self.min_players = min_players
        self.word_pairs = list(word_pairs or WORD_PAIRS)
        self.rng = rng or random.Random()

    def draw_pair(self) -> WordPair:
        return self.rng.choice(self.word_pairs).model_copy()

    def snapshot(self, room: SpyRoom) -> OutRoomState:
        """Public view only: no spy id, no cards, no words."""
        return OutRoomState(
            id=room.id,
            host_id=room.host_id,
            players=[p.public() for p in room.players],
            spectators=[p.public() for p in room.spectators],
            phase=room.phase,
            round=room.round,
            phase_ends_at=room.phase_ends_at,
        )

    # ----------------------------
    # Host actions
    # ----------------------------
    def start_game(self, room: SpyRoom, actor_id: str) -> Outgoing:
        if actor_id != room.host_id:
            raise Forbidden("Only the host can start the game")
        if room.phase != "lobby":
            raise PreconditionFailed(f"Cannot start in phase {room.phase}")
        if len(room.players) < self.min_players:
            raise PreconditionFailed(f"Need at least {self.min_players} players")

        room.phase = "assigning"
        spy = self.rng.choice(room.players)
        room.spy_id = spy.id
        room.spy_name = spy.username

        events: Outgoing = []
        for p in room.players:
            if p.id == room.spy_id:
                p.card = Card(type="spy", word=room.pair.spy)
            else:
                p.card = Card(type="real", word=room.pair.real)
            events.append(private(OutYourCard(card=p.card.model_dump()), p.id))

        logger.info("spy game started", room_id=room.id, players=len(room.players))
        return events + self._enter_discussion(room)

    def reset_game(self, room: SpyRoom, actor_id: str) -> Outgoing:
        if actor_id != room.host_id:
            raise Forbidden("Only the host can reset the game")

        self.timers.cancel(room)
        room.players = room.players + room.spectators
        room.spectators = []
        for p in room.players:
            p.card = None
        room.spy_id = None
        room.spy_name = None
        room.round = 1
        room.phase = "lobby"
        room.votes = {}
        room.phase_ends_at = None
        room.pair = self.draw_pair()

        logger.info("spy game reset", room_id=room.id)
        return [self.snapshot(room)]

    # ----------------------------
    # Player actions
    # ----------------------------
    def cast_vote(self, room: SpyRoom, voter_id: str, target_id: str) -> Outgoing:
        if room.phase != "voting":
            raise PreconditionFailed("Votes are only accepted while voting")
        if not room.in_roster(voter_id):
            raise Forbidden("Only active players can vote")
        if voter_id in room.votes:
            raise PreconditionFailed("Already voted")
        if not room.in_roster(target_id):
            raise InvalidInput("Unknown vote target")

        room.votes[voter_id] = target_id
        # the tally stays secret until the phase resolves
        return []

    # ----------------------------
    # Timed transitions
    # ----------------------------
    def begin_voting(self, room: SpyRoom) -> Outgoing:
        if room.phase != "discussion":
            return []
        room.phase = "voting"
        room.votes = {}
        self._arm(room, self.voting_sec, self.resolve_votes)
        return [self.snapshot(room)]

    def resolve_votes(self, room: SpyRoom) -> Outgoing:
        if room.phase != "voting":
            return []
        self.timers.cancel(room)

        # votes for someone who already left the roster are void
        votes = {voter: target for voter, target in room.votes.items() if room.in_roster(target)}
        room.votes = {}
        kicked_id = tally_votes(votes)

        if kicked_id is None:
            return self._end_game(room, "spy")

        if kicked_id == room.spy_id:
            return self._end_game(room, "players", kicked_name=room.spy_name)

        kicked = room.eliminate(kicked_id)
        kicked_name = kicked.username if kicked else None
        events: Outgoing = [OutPlayerKicked(username=kicked_name or "")]
        logger.info("player eliminated", room_id=room.id, pid=kicked_id, round=room.round)

        if len(room.players) <= 2:
            return events + self._end_game(room, "spy", kicked_name=kicked_name)

        room.round += 1
        return events + self._enter_discussion(room)

    # ----------------------------
    # Membership changes
    # ----------------------------
    def after_leave(self, room: SpyRoom, left_id: str) -> Outgoing:
        """Re-evaluate a running game after a participant left the room."""
        if room.phase in ACTIVE_PHASES:
            if left_id == room.spy_id:
                return self._end_game(room, "players")
            if len(room.players) <= 2:
                return self._end_game(room, "spy")
        return [self.snapshot(room)]

    # ----------------------------
    # Internals
    # ----------------------------
    def _arm(self, room: SpyRoom, delay_sec: float, action) -> None:
        handle = self.timers.schedule(room, self.repo, delay_sec, action)
        room.phase_ends_at = handle.deadline_ms

    def _enter_discussion(self, room: SpyRoom) -> Outgoing:
        room.phase = "discussion"
        room.votes = {}
        self._arm(room, self.discussion_sec, self.begin_voting)
        return [self.snapshot(room)]

    def _end_game(self, room: SpyRoom, winner: Winner, kicked_name: Optional[str] = None) -> Outgoing:
        self.timers.cancel(room)
        room.phase = "ended"
        room.votes = {}
        room.phase_ends_at = now_ms()

        logger.info("spy game ended", room_id=room.id, winner=winner, round=room.round)
        return [
            OutGameResult(winner=winner, spy=room.spy_name, kicked=kicked_name),
            self.snapshot(room),
        ]
