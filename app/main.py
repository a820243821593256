# app/main.py
from __future__ import annotations

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.domain.chess import PythonChessEngine
from app.domain.common.timers import PhaseTimers
from app.domain.spy import SpyMachine
from app.settings import Settings, get_settings
from app.store.room_repo import ChessRoomRepo, LiveRoomRepo, SpyRoomRepo
from app.transport.admin import router as admin_router
from app.transport.gateway import BroadcastGateway
from app.transport.ws import router as ws_router
from app.transport.ws_manager import WSManager
from app.util.log import configure_logging

logger = structlog.get_logger()


def init_state(app: FastAPI, settings: Settings) -> None:
    """Wire registries, timers and the gateway onto app.state."""
    wsman = WSManager()
    timers = PhaseTimers()
    gateway = BroadcastGateway(wsman)
    timers.bind(gateway.publish)

    repo_kwargs = dict(timers=timers, name_max_len=settings.NAME_MAX_LEN, code_len=settings.ROOM_CODE_LEN)
    # the machine is created right after; the factory is only called on room creation
    spy_repo = SpyRoomRepo(pair_factory=lambda: app.state.spy.draw_pair(), **repo_kwargs)

    app.state.wsman = wsman
    app.state.timers = timers
    app.state.gateway = gateway
    app.state.spy_repo = spy_repo
    app.state.spy = SpyMachine(
        repo=spy_repo,
        timers=timers,
        discussion_sec=settings.DISCUSSION_SEC,
        voting_sec=settings.VOTING_SEC,
        min_players=settings.SPY_MIN_PLAYERS,
    )
    app.state.chess_repo = ChessRoomRepo(engine_factory=PythonChessEngine, **repo_kwargs)
    app.state.live_repo = LiveRoomRepo(**repo_kwargs)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.APP_NAME)
    allowed_origins = [o.strip() for o in settings.WS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if "null" not in allowed_origins:
        allowed_origins.append("null")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        configure_logging(settings.LOG_LEVEL)
        init_state(app, settings)
        logger.info("server started", app=settings.APP_NAME)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        # nothing is persisted; just stop pending phase timers
        for room in app.state.spy_repo.list_rooms():
            app.state.timers.cancel(room)

    @app.get("/health")
    async def health():
        return {
            "ok": True,
            "rooms": {
                "spy": len(app.state.spy_repo.list_rooms()),
                "chess": len(app.state.chess_repo.list_rooms()),
                "live": len(app.state.live_repo.list_rooms()),
            },
        }

    app.include_router(ws_router)
    app.include_router(admin_router)
    return app


app = create_app()
