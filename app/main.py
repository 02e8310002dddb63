from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from app.api.routes.coop_sessions import router as coop_sessions_router
from app.api.routes.coop_ws import router as coop_ws_router
from app.api.routes.health import router as health_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal, dispose_engine
from app.game.coop.notifications import CoopNotifier
from app.game.coop.sampler import QuestionSampler
from app.game.coop.service import CoopSessionService
from app.game.coop.sweeper import CoopSessionSweeper
from app.realtime.hub import RealtimeHub
from app.services.push_notifications import PushNotifier

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    sweeper: CoopSessionSweeper = app.state.coop_sweeper
    if settings.coop_sweeper_enabled:
        sweeper.start()
    try:
        yield
    finally:
        await sweeper.stop()
        await app.state.realtime_hub.drain()
        await dispose_engine()
        logger.info("api_shutdown_complete")


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    realtime_hub = RealtimeHub.from_settings()
    notifier = CoopNotifier(realtime=realtime_hub, push=PushNotifier())

    app = FastAPI(
        title="QCM Coop API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.realtime_hub = realtime_hub
    app.state.coop_service = CoopSessionService(
        session_factory=SessionLocal,
        notifier=notifier,
        sampler=QuestionSampler(),
    )
    app.state.coop_sweeper = CoopSessionSweeper(
        session_factory=SessionLocal,
        notifier=notifier,
    )
    app.include_router(health_router)
    app.include_router(coop_sessions_router)
    app.include_router(coop_ws_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
        ws_ping_interval=20.0,
        ws_ping_timeout=20.0,
    )


if __name__ == "__main__":
    run()
