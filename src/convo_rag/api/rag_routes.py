"""
RAG Routes

Boundary endpoints for the chat and analysis flows.

Both endpoints degrade instead of failing: a retrieval error yields an
ungrounded result and a warning in the log, never an HTTP error.
"""

import logging
from typing import Annotated, Dict

from fastapi import APIRouter, Depends

from .dependencies import get_formatter, get_retrieval
from .models import (
    AugmentRequest,
    AugmentResponse,
    GroundingRequest,
    GroundingResponse,
    RagInfo,
    ReferenceSourceModel,
)
from ..core.errors import RAGError
from ..retrieval.attribution import (
    build_grounding,
    find_knowledge_chunks,
    find_similar_conversations,
)
from ..retrieval.context import ContextFormatter, build_augmented_prompt
from ..retrieval.service import RetrievalService

logger = logging.getLogger("rag.app")

router = APIRouter(prefix="/rag", tags=["rag"])


@router.post(
    "/augment",
    response_model=AugmentResponse,
    summary="Augment a system prompt with book knowledge",
)
async def augment_prompt(
    req: AugmentRequest,
    retrieval: Annotated[RetrievalService, Depends(get_retrieval)],
    formatter: Annotated[ContextFormatter, Depends(get_formatter)],
) -> AugmentResponse:
    try:
        augmented = await build_augmented_prompt(
            retrieval,
            formatter,
            req.query,
            req.system_prompt,
            top_k=req.top_k,
        )
    except RAGError as exc:
        logger.warning(
            "Book retrieval failed, using base prompt: %s (%s)",
            type(exc).__name__,
            exc,
        )
        return AugmentResponse(prompt=req.system_prompt, rag_used=False)

    info = augmented.rag_info()
    return AugmentResponse(
        prompt=augmented.prompt,
        rag_used=augmented.rag_used,
        rag_info=RagInfo(**info) if info else None,
        sources=augmented.sources,
    )


@router.post(
    "/grounding",
    response_model=GroundingResponse,
    summary="Similar conversations and book knowledge for analysis",
)
async def grounding(
    req: GroundingRequest,
    retrieval: Annotated[RetrievalService, Depends(get_retrieval)],
) -> GroundingResponse:
    """
    Each half (conversations, book chunks) falls back to an empty list on its
    own failure; the other half is unaffected.
    """
    degraded: Dict[str, str] = {}

    try:
        conversations = await find_similar_conversations(
            retrieval,
            req.query,
            user_id=req.user_id,
            exclude_conversation_id=req.conversation_id,
        )
    except RAGError as exc:
        logger.warning("Conversation retrieval skipped: %s (%s)", type(exc).__name__, exc)
        conversations = []
        degraded["conversations"] = exc.error_code

    try:
        chunks = await find_knowledge_chunks(retrieval, req.query)
    except RAGError as exc:
        logger.warning("Book retrieval skipped: %s (%s)", type(exc).__name__, exc)
        chunks = []
        degraded["books"] = exc.error_code

    result = build_grounding(conversations, chunks)
    return GroundingResponse(
        similar_conversations=result.conversations,
        knowledge_chunks=result.chunks,
        reference_sources=[
            ReferenceSourceModel(key=r.key, text=r.text, score=r.score)
            for r in result.references
        ],
        degraded=degraded,
    )
