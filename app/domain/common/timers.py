from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import structlog

from app.util.timeutil import now_ms

logger = structlog.get_logger()

# (mode, room_id, events) -> enqueued for the room; must not await
Deliver = Callable[[str, str, List[Any]], None]
# transition run under the room lock; returns events to broadcast
Action = Callable[[Any], List[Any]]


@dataclass
class PhaseTimer:
    """Handle of the single pending timer of a room. Lives on room.timer."""
    room_id: str
    phase: str
    round: int
    deadline_ms: int
    task: Optional[asyncio.Task] = field(default=None, repr=False)


class PhaseTimers:
    """
    At most one pending delayed action per room.

    A fired timer goes through the same path as a client action: it takes the
    room lock and runs the transition. It is a no-op when the room was deleted,
    when the room no longer points at this handle (cancelled / re-armed), or
    when phase/round moved on since it was armed.
    """

    def __init__(self, deliver: Optional[Deliver] = None) -> None:
        self._deliver = deliver

    def bind(self, deliver: Deliver) -> None:
        self._deliver = deliver

    def schedule(self, room, repo, delay_sec: float, action: Action) -> PhaseTimer:
        """Arm the room's timer. Must be called while holding room.lock."""
        self.cancel(room)

        handle = PhaseTimer(
            room_id=room.id,
            phase=room.phase,
            round=room.round,
            deadline_ms=now_ms() + int(delay_sec * 1000),
        )
        handle.task = asyncio.get_running_loop().create_task(
            self._run(handle, room, repo, delay_sec, action)
        )
        room.timer = handle
        logger.info(
            "timer-set",
            mode=repo.mode,
            room_id=room.id,
            phase=handle.phase,
            round=handle.round,
            delay_sec=delay_sec,
        )
        return handle

    def cancel(self, room) -> None:
        """Idempotent. Detaches first, so a late wakeup sees a foreign handle."""
        handle = getattr(room, "timer", None)
        room.timer = None
        if handle is None:
            return
        if handle.task is not None and not handle.task.done():
            handle.task.cancel()

    async def _run(self, handle: PhaseTimer, room, repo, delay_sec: float, action: Action) -> None:
        await asyncio.sleep(delay_sec)

        async with room.lock:
            if (
                not repo.has_room(room)
                or room.timer is not handle
                or room.phase != handle.phase
                or room.round != handle.round
            ):
                logger.info(
                    "timer-abort",
                    room_id=handle.room_id,
                    expected_phase=handle.phase,
                    expected_round=handle.round,
                )
                return
            # detach before running so the action may re-arm without cancelling itself
            room.timer = None
            logger.info("timer-fire", room_id=room.id, phase=handle.phase, round=handle.round)
            events = action(room)
            # enqueue before the next lock holder can publish its own events
            if events and self._deliver is not None:
                self._deliver(repo.mode, room.id, events)
