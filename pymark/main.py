#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------

"""
PyMark — FastAPI Application
============================
Entry point.  Start with:
    uvicorn pymark.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from pymark.core.config import get_settings
from pymark.routes import render
from pymark.services.directory import DirectoryClient
from pymark.services.macros import assemble
from pymark.services.macros.stdlib import UserLookup

logger = logging.getLogger(__name__)


def create_app(lookup: Optional[UserLookup] = None) -> FastAPI:
    """
    Build the application.

    *lookup* replaces the Confluence directory client (tests inject a
    dict-backed function).
    """
    settings = get_settings()

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else settings.log_level.upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    directory: DirectoryClient | None = None
    if lookup is None and settings.lookup_enabled:
        directory = DirectoryClient.from_settings(settings)
        lookup = directory.lookup
    elif lookup is None:
        logger.info("No Confluence URL configured; user links render as plain names")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Close the directory client on shutdown."""
        yield
        if directory is not None:
            directory.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Markdown macro expansion into Confluence storage format",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # ── Routers ───────────────────────────────────────────────────────────
    API = "/api/v1"
    app.include_router(render.router, prefix=API)

    # assembled once, read-only afterwards, shared by every request
    app.state.lib = assemble(lookup)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/api/docs",
        }

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
