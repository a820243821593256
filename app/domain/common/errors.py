# app/domain/common/errors.py
from __future__ import annotations


class GameError(Exception):
    """
    Base for every recoverable room/game error.
    Handlers turn these into an ack failure or drop them; they never escape a socket loop.
    """
    code = "GAME_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(GameError):
    """Room/lobby absent."""
    code = "NOT_FOUND"


class Forbidden(GameError):
    """Non-host invoking a host-only action."""
    code = "FORBIDDEN"


class PreconditionFailed(GameError):
    """Room full, wrong phase, not enough players, duplicate vote..."""
    code = "PRECONDITION_FAILED"


class InvalidInput(GameError):
    """Malformed color/name/coordinates/targets."""
    code = "INVALID_INPUT"
