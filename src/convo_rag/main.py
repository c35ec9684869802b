"""
RAG Service Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Service objects built once per process, in the lifespan
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .core.errors import RAGError, rag_exception_handler, unhandled_exception_handler
from .embeddings.embedder import Embedder
from .embeddings.registry import IndexRegistry
from .retrieval.context import ContextFormatter
from .retrieval.service import RetrievalService

from .api import (
    health_routes,
    rag_routes,
    vector_routes,
)


logger = logging.getLogger("rag.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Build the shared service objects and expose them on `app.state`.

    Index storage is opened lazily on first use, so startup performs no disk
    or network I/O.
    """
    logger.info("Starting convo-rag")

    embedder = Embedder()
    registry = IndexRegistry()

    app.state.embedder = embedder
    app.state.registry = registry
    app.state.retrieval = RetrievalService(embedder, registry)
    app.state.formatter = ContextFormatter()

    if not embedder.is_configured:
        logger.warning("No embedding API key configured; embedding calls will fail")

    yield

    logger.info("Shutting down convo-rag")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="convo-rag",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RAGError, rag_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(vector_routes.router)
    app.include_router(rag_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
