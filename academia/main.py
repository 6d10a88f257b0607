"""
Main application entry point for the Academia gamification service.

This module builds the FastAPI application, wires the gamification router and
the shared exception handlers, and manages the database lifecycle.

Usage:
    - Direct: python -m academia.main
    - ASGI server: uvicorn academia.main:app
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from academia import __version__
from academia.api import register_exception_handlers
from academia.common.logger import app_logger
from academia.common.redis import reset_redis_client
from academia.config import settings
from academia.database.init_db import close_database, create_tables, initialize_database
from academia.gamification import initialize_gamification_system
from academia.gamification.controllers import router as gamification_router
from academia.gamification.service import reset_gamification_service

# Setup module logger
logger = app_logger.getChild("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI application lifespan context manager.

    Initializes the database, creates missing tables and seeds the badge
    catalog on startup; releases connections on shutdown.
    """
    logger.info("Application startup sequence initiated.")
    try:
        engine = await initialize_database(
            database_url=settings.DATABASE_URL,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT
        )
        await create_tables(engine)
        await initialize_gamification_system()
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Failed to initialize application: {str(e)}")
        raise

    yield

    logger.info("Application shutdown sequence initiated.")
    reset_gamification_service()
    await reset_redis_client()
    await close_database()
    logger.info("Application shutdown complete")


def create_app(manage_resources: bool = True) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        manage_resources: Whether startup/shutdown initialize and close the
            database; tests pass False and provide their own service

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="XP ledger, streaks, badges and leaderboards for Academia",
        version=__version__,
        lifespan=lifespan if manage_resources else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(gamification_router, prefix=settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": f"Welcome to {settings.PROJECT_NAME}"}

    logger.info(f"Application initialized with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", 8000))
    reload_enabled = os.environ.get("RELOAD", "false").lower() == "true"

    logger.info(f"Starting server on {host}:{port} (reload: {reload_enabled})")

    uvicorn.run(
        "academia.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        log_level=settings.LOG_LEVEL.lower()
    )
