"""FastAPI application entry point."""
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import Engine

from flowbuilder.agent.cancellation import AgentRunRegistry
from flowbuilder.config import Settings, settings
from flowbuilder.database import build_engine, build_session_factory, init_db
from flowbuilder.routers import agent, checkpoints, mcp
from flowbuilder.services.checkpoint_manager import CheckpointManager

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings, engine: Optional[Engine] = None) -> FastAPI:
    """Build the application with its own engine, session factory and checkpoint manager."""
    logging.basicConfig(
        level=app_settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = engine or build_engine(app_settings.DATABASE_URL)
    session_factory = build_session_factory(engine)

    app = FastAPI(
        title="Flow Builder",
        description="Low-code workflow builder backend with checkpointed AI tool execution",
        version="0.1.0",
    )

    app.state.settings = app_settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.checkpoint_manager = CheckpointManager(
        session_factory,
        history_limit=app_settings.CHECKPOINT_HISTORY_LIMIT,
        statement_timeout_ms=app_settings.ROLLBACK_STATEMENT_TIMEOUT_MS,
    )
    app.state.agent_runs = AgentRunRegistry()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(checkpoints.router, prefix="/api/checkpoints", tags=["Checkpoints"])
    app.include_router(mcp.router, prefix="/api/mcp", tags=["MCP"])
    app.include_router(agent.router, prefix="/api/agent", tags=["Agent"])

    # Create database tables (for SQLite dev mode); Postgres goes through alembic
    if engine.dialect.name == "sqlite":
        init_db(engine)

    @app.get("/api/health")
    def health_check():
        return {"status": "ok"}

    logger.info("Application created (database dialect: %s)", engine.dialect.name)
    return app


app = create_app()
