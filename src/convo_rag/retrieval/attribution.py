"""
Source Attribution and Grounding

Deduplication and quality gating of retrieved results for attribution lists,
plus the grounding bundle the conversation analysis step asks for.

Rules
-----
- Book chunks share a source when title, chapter and page all match.
- Conversations share a source when their conversation_id matches.
- Deduplication keeps the highest-scoring result per source and sorts the
  survivors by score, descending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from ..embeddings.models import BookChunkRecord, ConversationRecord, SearchResult

logger = logging.getLogger("rag.attribution")

T = TypeVar("T")


# ---------------------------------------------------------------------
# Source Keys and Labels
# ---------------------------------------------------------------------

def book_source_key(record: BookChunkRecord) -> str:
    return (
        f"{record.book_title}::{record.chapter_title or ''}::"
        f"{record.page_number or ''}"
    )


def format_book_source_label(record: BookChunkRecord) -> str:
    """Human-readable source label, e.g. ``Influence - Chapter 3 Page 12``."""
    label = record.book_title
    if record.chapter_title:
        label += f" - {record.chapter_title}"
    if record.page_number:
        label += f" Page {record.page_number}"
    return label


# ---------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------

def dedupe_by_key(items: Iterable[T], key: Callable[[T], str]) -> List[T]:
    """
    Keep the highest-scoring item per key, sorted by score descending.

    Ties keep the item seen first.
    """
    best: Dict[str, T] = {}
    for item in items:
        k = key(item)
        existing = best.get(k)
        if existing is None or item.score > existing.score:
            best[k] = item
    return sorted(best.values(), key=lambda item: item.score, reverse=True)


def dedupe_book_chunks(
    results: Iterable[SearchResult[BookChunkRecord]],
) -> List[SearchResult[BookChunkRecord]]:
    return dedupe_by_key(results, lambda r: book_source_key(r.item))


def dedupe_conversations(
    results: Iterable[SearchResult[ConversationRecord]],
) -> List[SearchResult[ConversationRecord]]:
    return dedupe_by_key(results, lambda r: r.item.conversation_id)


def select_knowledge_chunks(
    raw: Sequence[SearchResult[BookChunkRecord]],
    primary_threshold: float = 0.5,
    fallback_threshold: float = 0.35,
    min_count: int = 5,
    limit: int = 6,
) -> List[SearchResult[BookChunkRecord]]:
    """
    Quality gate for analysis grounding.

    Keeps results scoring above `primary_threshold`; when fewer than
    `min_count` pass, relaxes to `fallback_threshold`. The survivors are
    deduplicated by source and truncated to `limit`.
    """
    chunks = [r for r in raw if r.score > primary_threshold]
    if len(chunks) < min_count:
        chunks = [r for r in raw if r.score > fallback_threshold]
    return dedupe_book_chunks(chunks)[:limit]


# ---------------------------------------------------------------------
# Reference Sources
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ReferenceSource:
    key: str
    text: str
    score: float


def build_reference_sources(
    conversations: Sequence[SearchResult[ConversationRecord]],
    chunks: Sequence[SearchResult[BookChunkRecord]],
    limit: int = 10,
) -> List[ReferenceSource]:
    """
    Merge conversation and book results into one attribution list.

    Entries sharing a key collapse to the best-scoring one; the list is
    sorted by score and truncated to `limit`.
    """
    entries: List[ReferenceSource] = []

    for result in conversations:
        entries.append(
            ReferenceSource(
                key=f"conv::{result.item.conversation_id}",
                text=(
                    f"Similar conversation ({result.score * 100:.1f}%): "
                    f"{result.item.scenario or 'unknown'}"
                ),
                score=result.score,
            )
        )

    for result in chunks:
        label = format_book_source_label(result.item)
        entries.append(
            ReferenceSource(
                key=f"book::{book_source_key(result.item)}",
                text=f"Book ({result.score * 100:.1f}%): {label}",
                score=result.score,
            )
        )

    return dedupe_by_key(entries, lambda e: e.key)[:limit]


# ---------------------------------------------------------------------
# Grounding
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Grounding:
    conversations: List[SearchResult[ConversationRecord]] = field(default_factory=list)
    chunks: List[SearchResult[BookChunkRecord]] = field(default_factory=list)
    references: List[ReferenceSource] = field(default_factory=list)


async def find_similar_conversations(
    retrieval,
    query: str,
    user_id: Optional[str] = None,
    exclude_conversation_id: Optional[str] = None,
    fetch: int = 8,
    limit: int = 5,
) -> List[SearchResult[ConversationRecord]]:
    """
    Past conversations similar to `query`, excluding the current one.
    """
    results = await retrieval.search_conversations(query, fetch, user_id)
    if exclude_conversation_id is not None:
        results = [
            r for r in results if r.item.conversation_id != exclude_conversation_id
        ]
    return dedupe_conversations(results)[:limit]


async def find_knowledge_chunks(
    retrieval,
    query: str,
    fetch: int = 15,
) -> List[SearchResult[BookChunkRecord]]:
    """
    Diverse, quality-gated book chunks for `query`.
    """
    raw = await retrieval.retrieve_diverse(query, fetch)
    return select_knowledge_chunks(raw)


def build_grounding(
    conversations: Sequence[SearchResult[ConversationRecord]],
    chunks: Sequence[SearchResult[BookChunkRecord]],
) -> Grounding:
    return Grounding(
        conversations=list(conversations),
        chunks=list(chunks),
        references=build_reference_sources(conversations, chunks),
    )


async def gather_grounding(
    retrieval,
    query: str,
    user_id: Optional[str] = None,
    exclude_conversation_id: Optional[str] = None,
) -> Grounding:
    """
    Collect similar conversations, book chunks and merged references.

    Either retrieval failing raises; see the `/rag/grounding` route for the
    degrading variant.
    """
    conversations = await find_similar_conversations(
        retrieval, query, user_id, exclude_conversation_id
    )
    chunks = await find_knowledge_chunks(retrieval, query)

    logger.debug(
        "Grounding: %d conversations, %d chunks", len(conversations), len(chunks)
    )
    return build_grounding(conversations, chunks)
