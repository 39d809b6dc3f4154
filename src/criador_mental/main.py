"""
Criador Mental Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .config import settings
from .core.errors import CriadorError, criador_error_handler, unhandled_exception_handler
from .db.models import Base
from .db.session import get_async_engine
from .sessions.store import session_store
from .storage.blobs import BLOB_ROUTE_PREFIX

from .api import (
    chat_routes,
    editor_routes,
    health_routes,
    project_routes,
    session_routes,
)


logger = logging.getLogger("criador.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: create the projects table when a database is configured.
    Shutdown: flush every open editor and release the engine.
    """
    logger.info("Starting criador-mental")

    if settings.database_url:
        engine = get_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database schema ready")
    else:
        logger.info("DATABASE_URL not set, projects are kept in memory")

    if not settings.gemini_api_key.get_secret_value():
        logger.warning("GEMINI_API_KEY is not set; generation and chat will fail")

    yield

    logger.info("Shutting down criador-mental")
    for user_id in session_store.user_ids():
        session = session_store.remove(user_id)
        if session is not None and session.editor is not None:
            try:
                await session.editor.close()
            except Exception:
                logger.exception("Could not flush project of user %s", user_id)

    if settings.database_url:
        await get_async_engine().dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="criador-mental",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(CriadorError, criador_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(session_routes.router)
    app.include_router(project_routes.router)
    app.include_router(editor_routes.router)
    app.include_router(chat_routes.router)

    # Generated images
    app.mount(
        BLOB_ROUTE_PREFIX,
        StaticFiles(directory=settings.blob_root, check_dir=False),
        name="blobs",
    )

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
