"""
API Models

Request/response contracts for the vector and RAG endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- Reject unknown request fields
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..embeddings.models import BookChunkRecord, ConversationRecord, SearchResult
from ..retrieval.service import SearchType


# ---------------------------------------------------------------------
# Vector Endpoints
# ---------------------------------------------------------------------

class InitResponse(BaseModel):
    success: bool
    message: str
    indexes: List[str]

    model_config = ConfigDict(extra="forbid")


class EmbedRequest(BaseModel):
    text: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class EmbedResponse(BaseModel):
    embedding: List[float]
    dimension: int = Field(..., ge=1)
    model: str

    model_config = ConfigDict(extra="forbid")


class SearchRequest(BaseModel):
    """
    Vector search request.

    `user_id` only applies to conversation searches.
    """
    query: str = Field(..., min_length=1)
    type: SearchType = "conversation"
    limit: int = Field(default=5, ge=1, le=100)
    user_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class StoreConversationRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1)
    scenario: Optional[str] = None
    difficulty: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class StoreConversationResponse(BaseModel):
    success: bool
    conversation: ConversationRecord

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# RAG Endpoints
# ---------------------------------------------------------------------

class AugmentRequest(BaseModel):
    query: str = Field(..., min_length=1)
    system_prompt: str = ""
    top_k: int = Field(default=3, ge=1, le=20)

    model_config = ConfigDict(extra="forbid")


class RagInfo(BaseModel):
    source_count: int
    book_title: str
    top_score: float

    model_config = ConfigDict(extra="forbid")


class AugmentResponse(BaseModel):
    """
    Augmented system prompt.

    `sources` lists every retrieved chunk, including any filtered out of the
    prompt context.
    """
    prompt: str
    rag_used: bool
    rag_info: Optional[RagInfo] = None
    sources: List[SearchResult[BookChunkRecord]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class GroundingRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=2500)
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ReferenceSourceModel(BaseModel):
    key: str
    text: str
    score: float

    model_config = ConfigDict(extra="forbid")


class GroundingResponse(BaseModel):
    similar_conversations: List[SearchResult[ConversationRecord]] = Field(default_factory=list)
    knowledge_chunks: List[SearchResult[BookChunkRecord]] = Field(default_factory=list)
    reference_sources: List[ReferenceSourceModel] = Field(default_factory=list)
    # Retrieval halves that failed and were replaced with empty lists
    degraded: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")
