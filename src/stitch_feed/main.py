# src/stitch_feed/main.py
"""Main entry point for the Stitch feed API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from stitch_feed.api.v1 import discovery_router, feed_router, system_router, videos_router
from stitch_feed.core.logging import configure_logging
from stitch_feed.core.settings import settings
from stitch_feed.db.session import build_engine, build_session_factory, create_tables
from stitch_feed.repositories.video_repo import (
    ContentStoreError,
    DocumentConflictError,
    DocumentNotFoundError,
    TransientStoreError,
    VideoRepository,
)
from stitch_feed.services.sessions import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(database_url: str | None = None, *, create_schema: bool = True) -> FastAPI:
    """Build the API application bound to ``database_url``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging()
        engine = build_engine(database_url)
        if create_schema:
            await create_tables(engine)
        app.state.registry = SessionRegistry(VideoRepository(build_session_factory(engine)))
        logger.info("%s %s started", settings.app_name, settings.app_version)
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Discovery, home feed and conversation lane API",
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(GZipMiddleware)

    app.include_router(feed_router, prefix="/api/v1")
    app.include_router(discovery_router, prefix="/api/v1")
    app.include_router(videos_router, prefix="/api/v1")
    app.include_router(system_router, prefix="/api/v1")

    @app.exception_handler(DocumentNotFoundError)
    async def handle_not_found(request: Request, exc: DocumentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(TransientStoreError)
    async def handle_unavailable(request: Request, exc: TransientStoreError) -> JSONResponse:
        logger.warning("Content store unavailable for %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Content store unavailable, try again"},
        )

    @app.exception_handler(DocumentConflictError)
    async def handle_conflict(request: Request, exc: DocumentConflictError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Video id already exists"})

    @app.exception_handler(ContentStoreError)
    async def handle_store_error(request: Request, exc: ContentStoreError) -> JSONResponse:
        logger.error("Content store error for %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Content store error"},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("stitch_feed.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
