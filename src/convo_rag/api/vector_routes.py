"""
Vector Routes

This module exposes the vector store endpoints used by the practice app:
- Index initialization and statistics
- Raw text embedding
- Semantic search over book chunks or conversation summaries
- Storing conversation summary vectors

Failures raised by the core (`RAGError`) are translated into JSON error
responses by the global exception handler.
"""

import logging
from typing import Annotated, Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .dependencies import get_embedder, get_registry, get_retrieval
from .models import (
    EmbedRequest,
    EmbedResponse,
    InitResponse,
    SearchRequest,
    StoreConversationRequest,
    StoreConversationResponse,
)
from ..core.errors import StorageError
from ..embeddings.embedder import Embedder
from ..embeddings.models import IndexStats
from ..embeddings.registry import IndexRegistry
from ..retrieval.service import RetrievalService, SearchResponse

logger = logging.getLogger("rag.app")

router = APIRouter(prefix="/vector", tags=["vector"])


# ---------------------------------------------------------------------
# Index Lifecycle
# ---------------------------------------------------------------------

@router.post(
    "/init",
    response_model=InitResponse,
    summary="Initialize the conversation and book indexes",
)
def initialize_indexes(
    registry: Annotated[IndexRegistry, Depends(get_registry)],
) -> Union[InitResponse, JSONResponse]:
    """
    Open both indexes, creating storage where missing. Safe to call repeatedly.

    A storage failure answers 500 with the same body shape and
    `success: false`.
    """
    try:
        indexes = registry.initialize()
    except StorageError as exc:
        logger.error("Failed to initialize vector indexes: %s", exc)
        failure = InitResponse(
            success=False,
            message="Failed to initialize vector indexes",
            indexes=[],
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=failure.model_dump(),
        )

    return InitResponse(
        success=True,
        message="Vector indexes initialized successfully",
        indexes=indexes,
    )


@router.get(
    "/stats",
    response_model=IndexStats,
    summary="Get vector index statistics",
)
def get_index_stats(
    registry: Annotated[IndexRegistry, Depends(get_registry)],
) -> IndexStats:
    return registry.stats()


# ---------------------------------------------------------------------
# Embedding and Search
# ---------------------------------------------------------------------

@router.post(
    "/embed",
    response_model=EmbedResponse,
    summary="Embed a text",
)
async def embed_text(
    req: EmbedRequest,
    embedder: Annotated[Embedder, Depends(get_embedder)],
) -> EmbedResponse:
    info = await embedder.describe(req.text)
    return EmbedResponse(**info.model_dump())


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Semantic search over books or conversations",
)
async def search(
    req: SearchRequest,
    retrieval: Annotated[RetrievalService, Depends(get_retrieval)],
) -> SearchResponse:
    """
    Search one domain. An empty index yields `results: []`, `count: 0`.
    """
    return await retrieval.search(
        req.query,
        type=req.type,
        limit=req.limit,
        user_id=req.user_id,
    )


@router.post(
    "/conversations",
    response_model=StoreConversationResponse,
    summary="Store a conversation summary vector",
)
async def store_conversation(
    req: StoreConversationRequest,
    retrieval: Annotated[RetrievalService, Depends(get_retrieval)],
) -> StoreConversationResponse:
    record = await retrieval.store_conversation(
        conversation_id=req.conversation_id,
        user_id=req.user_id,
        summary=req.summary,
        scenario=req.scenario,
        difficulty=req.difficulty,
    )
    return StoreConversationResponse(success=True, conversation=record)
