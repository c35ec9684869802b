"""
Retrieval Service

Semantic search over the book and conversation indexes.

Every call is two independent fallible steps: embedding the query (network)
and querying an index (disk). Embedding failures propagate unchanged; an
empty index yields an empty result list.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict

from .diversity import diversify
from ..config import settings
from ..embeddings.embedder import Embedder
from ..embeddings.models import (
    BookChunkRecord,
    ConversationRecord,
    SearchResult,
)
from ..embeddings.registry import IndexRegistry

logger = logging.getLogger("rag.retrieval")

SearchType = Literal["book", "conversation"]


class SearchResponse(BaseModel):
    query: str
    type: SearchType
    results: Union[
        List[SearchResult[BookChunkRecord]],
        List[SearchResult[ConversationRecord]],
    ]
    count: int

    model_config = ConfigDict(extra="forbid")


class RetrievalService:
    """
    Query-time access to both vector indexes.
    """

    def __init__(
        self,
        embedder: Embedder,
        registry: IndexRegistry,
        overfetch: Optional[int] = None,
    ) -> None:
        self.embedder = embedder
        self.registry = registry
        self.overfetch = settings.diversity_overfetch if overfetch is None else overfetch

    # ------------------------------------------------------------------
    # Book retrieval
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        k: int = 3,
    ) -> List[SearchResult[BookChunkRecord]]:
        """
        Plain top-K book retrieval, highest similarity first.
        """
        vector = await self.embedder.embed_text(query)
        results = self.registry.books().query(vector, k)
        logger.debug("Book retrieval: k=%d, found=%d", k, len(results))
        return results

    async def retrieve_diverse(
        self,
        query: str,
        k: int = 10,
    ) -> List[SearchResult[BookChunkRecord]]:
        """
        Top-K book retrieval spread across distinct books.

        Fetches `overfetch * k` raw results, then rotates across books so one
        dominant book cannot fill the whole result set.
        """
        raw = await self.retrieve(query, k * self.overfetch)
        results = diversify(raw, k)
        logger.debug(
            "Diverse retrieval: k=%d, raw=%d, books=%d",
            k,
            len(raw),
            len({r.item.book_title for r in results}),
        )
        return results

    # ------------------------------------------------------------------
    # Conversation summaries
    # ------------------------------------------------------------------

    async def search_conversations(
        self,
        query: str,
        limit: int = 5,
        user_id: Optional[str] = None,
    ) -> List[SearchResult[ConversationRecord]]:
        """
        Similar past conversations, restricted to `user_id` when given.

        Fetches twice the limit so filtering by user still fills the page.
        """
        vector = await self.embedder.embed_text(query)
        results = self.registry.conversations().query(vector, limit * 2)

        if user_id is not None:
            results = [r for r in results if r.item.user_id == user_id]

        return results[:limit]

    async def store_conversation(
        self,
        conversation_id: str,
        user_id: str,
        summary: str,
        scenario: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> ConversationRecord:
        """
        Embed a conversation summary and store it as one new entry.
        """
        record = ConversationRecord(
            conversation_id=conversation_id,
            user_id=user_id,
            summary=summary,
            scenario=scenario,
            difficulty=difficulty,
        )
        vector = await self.embedder.embed_text(summary)
        self.registry.conversations().insert(vector, record)
        logger.info("Stored conversation summary %s", conversation_id)
        return record

    # ------------------------------------------------------------------
    # Unified search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        type: SearchType = "conversation",
        limit: int = 5,
        user_id: Optional[str] = None,
    ) -> SearchResponse:
        if type == "book":
            results = await self.retrieve(query, limit)
        else:
            results = await self.search_conversations(query, limit, user_id)

        return SearchResponse(
            query=query,
            type=type,
            results=results,
            count=len(results),
        )
