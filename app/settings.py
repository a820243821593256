# app/settings.py
from __future__ import annotations

from pydantic import BaseModel
import os


class Settings(BaseModel):
    APP_NAME: str = "partyrooms-server"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Dev
    LOG_LEVEL: str = "INFO"

    # WebSocket origin policy (comma-separated)
    WS_ALLOWED_ORIGINS: str = "http://localhost:5173,http://127.0.0.1:5173,null"
    # Dev helper: allow any private LAN IP on port 5173
    WS_ALLOW_LAN_ORIGINS: bool = True

    # Rooms
    ROOM_CODE_LEN: int = 6
    NAME_MAX_LEN: int = 24

    # Spy game
    DISCUSSION_SEC: float = 120
    VOTING_SEC: float = 60
    SPY_MIN_PLAYERS: int = 3


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y", "on")


def get_settings() -> Settings:
    return Settings(
        APP_NAME=os.getenv("APP_NAME", "partyrooms-server"),
        HOST=os.getenv("HOST", "0.0.0.0"),
        PORT=int(os.getenv("PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),

        WS_ALLOWED_ORIGINS=os.getenv(
            "WS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,null",
        ),
        WS_ALLOW_LAN_ORIGINS=_env_bool("WS_ALLOW_LAN_ORIGINS", "true"),

        ROOM_CODE_LEN=int(os.getenv("ROOM_CODE_LEN", "6")),
        NAME_MAX_LEN=int(os.getenv("NAME_MAX_LEN", "24")),

        DISCUSSION_SEC=float(os.getenv("DISCUSSION_SEC", "120")),
        VOTING_SEC=float(os.getenv("VOTING_SEC", "60")),
        SPY_MIN_PLAYERS=int(os.getenv("SPY_MIN_PLAYERS", "3")),
    )
