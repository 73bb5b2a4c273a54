"""commitsync REST API — FastAPI application factory."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from commitsync.api.deps import (
    dispose_engine,
    ensure_schema,
    init_dispatcher,
    init_session_factory,
    stop_dispatcher,
)
from commitsync.api.errors import register_error_handlers
from commitsync.api.middleware.request_id import RequestIDMiddleware
from commitsync.api.routers import analyze, commits, jobs, repositories
from commitsync.core.logging import setup_logging


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: DB engine, optional schema, dispatcher. Shutdown: cancel jobs, dispose engine."""
    factory = init_session_factory()
    if os.environ.get("COMMITSYNC_CREATE_SCHEMA") == "1":
        await ensure_schema()
    init_dispatcher(factory)
    yield
    await stop_dispatcher()
    await dispose_engine()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="commitsync",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)

    cors_origins = os.environ.get("COMMITSYNC_CORS_ORIGINS", "http://localhost:3000")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(analyze.router, prefix="/api/v1", tags=["analyze"])
    app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["jobs"])
    app.include_router(repositories.router, prefix="/api/v1", tags=["repositories"])
    app.include_router(commits.router, prefix="/api/v1", tags=["commits"])

    return app
