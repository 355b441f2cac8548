"""
Application lifecycle event handlers.

Startup creates the process-wide collaborators (realtime broadcaster,
media store) on ``app.state`` and initializes the database; shutdown
closes database connections.
"""

from typing import Callable

import structlog
from fastapi import FastAPI

from core.config import settings
from db.session import close_db, init_db
from services.media_service import get_media_store
from services.realtime_service import RealtimeBroadcaster

logger = structlog.get_logger(__name__)


def create_start_app_handler(app: FastAPI) -> Callable:
    """Create startup event handler."""

    async def start_app() -> None:
        logger.info("app_starting", app=settings.APP_NAME, env=settings.APP_ENV)

        app.state.broadcaster = RealtimeBroadcaster(send_timeout=settings.REALTIME_SEND_TIMEOUT_SECONDS)
        app.state.media_store = get_media_store()
        if app.state.media_store is None:
            logger.warning("media_store_not_configured")

        await init_db()

        logger.info("app_started", app=settings.APP_NAME)

    return start_app


def create_stop_app_handler(app: FastAPI) -> Callable:
    """Create shutdown event handler."""

    async def stop_app() -> None:
        logger.info("app_stopping", connections=app.state.broadcaster.connection_count)

        await close_db()

        logger.info("app_stopped")

    return stop_app
