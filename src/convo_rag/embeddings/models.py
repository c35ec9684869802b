"""
Vector Record Data Models

This module defines the canonical records stored alongside each embedding
vector, one record type per index domain:

- `BookChunkRecord`     -> the "books" index
- `ConversationRecord`  -> the "conversations" index

Each record carries an explicit `domain` tag. Persisted metadata is parsed back
through the `IndexRecord` discriminated union, so reading an entry is a checked
match on the tag rather than an unchecked cast.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def utc_timestamp() -> str:
    """ISO 8601 timestamp for record creation."""
    return datetime.now(timezone.utc).isoformat()


class Domain(str, Enum):
    """Logical namespaces of the vector indexes."""

    BOOKS = "books"
    CONVERSATIONS = "conversations"


class BookChunkRecord(BaseModel):
    """
    A single retrievable chunk of book content.

    Created once during ingestion and never modified afterwards.
    """

    domain: Literal["books"] = "books"

    book_title: str = Field(
        ...,
        min_length=1,
        description="Title of the source work; shared by all of its chunks.",
    )

    chapter_title: Optional[str] = Field(
        default=None,
        description="Best-effort chapter heading this chunk falls under.",
    )

    page_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="Source page, when the extractor preserved page boundaries.",
    )

    content: str = Field(
        ...,
        min_length=1,
        description="Chunk text payload.",
    )

    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


class ConversationRecord(BaseModel):
    """
    Summary of one analyzed practice conversation.
    """

    domain: Literal["conversations"] = "conversations"

    conversation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    summary: str = Field(..., min_length=1)
    scenario: Optional[str] = None
    difficulty: Optional[str] = None
    timestamp: str = Field(default_factory=utc_timestamp)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )


IndexRecord = Annotated[
    Union[BookChunkRecord, ConversationRecord],
    Field(discriminator="domain"),
]

index_record_adapter: TypeAdapter = TypeAdapter(IndexRecord)


RecordT = TypeVar("RecordT", BookChunkRecord, ConversationRecord)


class SearchResult(BaseModel, Generic[RecordT]):
    """
    A record matched by a vector query. Higher score = more similar.
    """

    item: RecordT
    score: float

    model_config = ConfigDict(frozen=True)


class IndexStats(BaseModel):
    """
    Observational statistics across both indexes.
    """

    conversations: int = Field(..., ge=0)
    book_chunks: int = Field(..., ge=0)
    total_vectors: int = Field(..., ge=0)
    dimension: int = Field(..., ge=0)
    storage_path: str

    model_config = ConfigDict(extra="forbid")


class EmbeddingInfo(BaseModel):
    """
    Embedding of a single text together with its provenance.
    """

    embedding: List[float]
    dimension: int = Field(..., ge=1)
    model: str

    model_config = ConfigDict(extra="forbid")
