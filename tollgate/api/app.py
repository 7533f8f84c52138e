"""FastAPI application factory for the Tollgate service."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tollgate import __version__
from tollgate.api.routes.channel import channel_endpoint
from tollgate.api.routes.monitoring import router as monitoring_router
from tollgate.channels.bus import MessageChannel
from tollgate.core.config.models import Config
from tollgate.db.database import DatabaseManager
from tollgate.runtime.orchestrator import BackgroundOrchestrator
from tollgate.stores.sql import SqlDataStore, SqlPermissionStore, SqlPromptLedger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle."""
    config: Config = app.state.config

    # Startup: database, stores, channel, orchestrator
    db_manager = DatabaseManager(config.database.path)
    await db_manager.init_db()

    channel = MessageChannel(coalesce=config.channel.coalesce)
    orchestrator = BackgroundOrchestrator(
        channel,
        SqlDataStore(db_manager),
        SqlPermissionStore(db_manager),
        SqlPromptLedger(db_manager),
        config=config,
    )

    app.state.db_manager = db_manager
    app.state.channel = channel
    app.state.orchestrator = orchestrator

    await orchestrator.start()

    yield

    # Shutdown: in-flight flows first, then the engine
    await orchestrator.stop()
    app.state.orchestrator = None
    await db_manager.close()


def create_app(config: Config | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Application configuration (defaults when omitted)

    Returns:
        Configured FastAPI application instance
    """
    config = config or Config()

    app = FastAPI(
        title="Tollgate",
        description="Background orchestrator gating frontend tasks behind human approval",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.channel = None
    app.state.orchestrator = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_api_websocket_route(config.server.websocket_path, channel_endpoint)

    # Mount routes at /api/v1
    api_v1 = FastAPI()
    api_v1.include_router(monitoring_router)

    # Share state with sub-app so dependencies can access the orchestrator
    api_v1.state = app.state

    app.mount("/api/v1", api_v1)

    return app
