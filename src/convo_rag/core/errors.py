"""
Error Taxonomy and Global Error Handling

This module defines the exceptions raised by the RAG core and the FastAPI
exception handlers that translate them into HTTP responses.

Design Goals
------------
- One exception family (`RAGError`) for every failure the core can raise
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("rag.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class RAGError(RuntimeError):
    """Base error for the retrieval-augmented generation core."""

    error_code = "rag_error"
    status_code = 500


class ConfigurationError(RAGError):
    """Raised when provider credentials are missing or invalid."""

    error_code = "configuration_error"
    status_code = 503


class UnsupportedFormatError(RAGError):
    """Raised when ingestion is given a file type with no extractor."""

    error_code = "unsupported_format"
    status_code = 415

    def __init__(self, extension: str) -> None:
        self.extension = extension
        super().__init__(f"Unsupported file format: {extension or '(none)'}")


class ExtractionError(RAGError):
    """Raised when text cannot be read from a supported document."""

    error_code = "extraction_error"
    status_code = 422


class ProviderError(RAGError):
    """Raised when the remote embedding call fails."""

    error_code = "provider_error"
    status_code = 502


class StorageError(RAGError):
    """Raised when a vector index read or write fails."""

    error_code = "storage_error"
    status_code = 500


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def rag_exception_handler(
    request: Request,
    exc: RAGError,
) -> JSONResponse:
    """
    Translate a RAG core failure into a minimal JSON error response.

    The exception message is logged but never returned; clients only see the
    stable error code for the failure class.
    """
    logger.error(
        "RAG failure during request %s %s: %s (%s)",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": exc.error_code,
        "detail": exc.error_code.replace("_", " ").capitalize(),
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
