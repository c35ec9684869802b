"""
Context Formatter / Prompt Augmenter

Turns retrieved book chunks into an attributed context block and appends it
to a base system prompt.

Filtering
---------
Each filter inspects one chunk's content and returns the reason it should be
dropped, or None to keep it. Filters are independent; a chunk survives only if
no filter rejects it. The default set targets reference pages, citation lists,
copyright notices, page-number indexes and fragments.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

from ..config import settings
from ..embeddings.models import BookChunkRecord, SearchResult

logger = logging.getLogger("rag.context")

ChunkFilter = Callable[[str], Optional[str]]

SOURCE_SEPARATOR = "\n---\n"

ATTRIBUTION_DIRECTIVE = (
    "IMPORTANT: Answer the user's question by directly referencing the book content above.\n"
    "- Start with \"According to the book...\" or \"The book explains that...\"\n"
    "- Cite specific theories, concepts, and terms from the text\n"
    "- Quote relevant passages when appropriate\n"
    "- Mention the book title in your response"
)


# ---------------------------------------------------------------------
# Default Filters
# ---------------------------------------------------------------------

_LEADING_CITATION = re.compile(r"^\s*[A-Z][a-z]+,\s+[A-Z]\.\s+[A-Z]\.", re.MULTILINE)
_AUTHOR_INITIAL = re.compile(r"[A-Z][a-z]+,\s+[A-Z]\.")
_LONG_NUMBER = re.compile(r"\d{3,}")


def reject_reference_section(content: str) -> Optional[str]:
    lowered = content.lower()
    if "references" in lowered or "bibliography" in lowered:
        return "reference section"
    return None


def reject_leading_citation(content: str) -> Optional[str]:
    if _LEADING_CITATION.search(content):
        return "citation entry"
    return None


def reject_copyright(content: str) -> Optional[str]:
    if "copyright" in content.lower() or "©" in content:
        return "copyright notice"
    return None


def reject_page_numbers(content: str) -> Optional[str]:
    # Indexes and reference lists are dense with page numbers and years
    if len(_LONG_NUMBER.findall(content)) > 3:
        return "page-number list"
    return None


def reject_author_lists(content: str) -> Optional[str]:
    if len(_AUTHOR_INITIAL.findall(content)) > 3:
        return "author list"
    return None


def min_length_filter(min_chars: int) -> ChunkFilter:
    def reject_short(content: str) -> Optional[str]:
        if len(content) < min_chars:
            return "fragment"
        return None

    return reject_short


def blocked_phrase_filter(phrases: Iterable[str]) -> ChunkFilter:
    lowered = [p.lower() for p in phrases if p]

    def reject_blocked(content: str) -> Optional[str]:
        text = content.lower()
        for phrase in lowered:
            if phrase in text:
                return f"blocked phrase {phrase!r}"
        return None

    return reject_blocked


DEFAULT_FILTERS: List[ChunkFilter] = [
    reject_reference_section,
    reject_leading_citation,
    reject_copyright,
    reject_page_numbers,
    reject_author_lists,
]


# ---------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------

class ContextFormatter:
    """
    Filters retrieved chunks and renders them as an attributed context block.

    Parameters
    ----------
    filters : Optional[Sequence[ChunkFilter]]
        Content filters; defaults to `DEFAULT_FILTERS`. The length filter and
        the blocked-phrase filter are always appended.

    min_chars : Optional[int]
        Shortest chunk kept, in characters.

    blocked_phrases : Optional[Iterable[str]]
        Case-insensitive phrases that disqualify a chunk.
    """

    def __init__(
        self,
        filters: Optional[Sequence[ChunkFilter]] = None,
        min_chars: Optional[int] = None,
        blocked_phrases: Optional[Iterable[str]] = None,
    ) -> None:
        self.min_chars = settings.min_chunk_chars if min_chars is None else min_chars
        phrases = settings.blocked_phrases if blocked_phrases is None else blocked_phrases

        self.filters: List[ChunkFilter] = list(DEFAULT_FILTERS if filters is None else filters)
        self.filters.append(min_length_filter(self.min_chars))
        self.filters.append(blocked_phrase_filter(phrases))

    def rejection_reason(self, content: str) -> Optional[str]:
        for chunk_filter in self.filters:
            reason = chunk_filter(content)
            if reason is not None:
                return reason
        return None

    def filter_results(
        self,
        results: Sequence[SearchResult[BookChunkRecord]],
    ) -> List[SearchResult[BookChunkRecord]]:
        kept: List[SearchResult[BookChunkRecord]] = []
        for result in results:
            reason = self.rejection_reason(result.item.content)
            if reason is None:
                kept.append(result)
            else:
                logger.debug(
                    "Dropped chunk from '%s' (%s)", result.item.book_title, reason
                )
        return kept

    def format_context(self, results: Sequence[SearchResult[BookChunkRecord]]) -> str:
        """
        Render surviving chunks as numbered sources.

        Returns an empty string when no chunk survives filtering.
        """
        valid = self.filter_results(results)
        if not valid:
            return ""

        blocks = [
            _format_source(index, result)
            for index, result in enumerate(valid, start=1)
        ]

        return (
            f"The following information is from the book \"{valid[0].item.book_title}\":\n\n"
            f"{SOURCE_SEPARATOR.join(blocks)}\n\n"
            f"---\n\n"
            f"{ATTRIBUTION_DIRECTIVE}"
        )

    @staticmethod
    def augment(base_prompt: str, context: str) -> str:
        if not context:
            return base_prompt
        return f"{base_prompt}\n\n{context}"


def _format_source(index: int, result: SearchResult[BookChunkRecord]) -> str:
    item = result.item
    return (
        f"📚 Source {index} (Relevance: {result.score * 100:.1f}%)\n"
        f"Book: {item.book_title}\n"
        f"{item.chapter_title or 'Chapter unknown'}\n"
        f"\n"
        f"Content:\n"
        f"{item.content.strip()}"
    )


# ---------------------------------------------------------------------
# Prompt Augmentation
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class AugmentedPrompt:
    """
    Result of augmenting a system prompt with book knowledge.

    `sources` holds every retrieved result, including chunks the formatter
    filtered out of `context`.
    """

    prompt: str
    sources: List[SearchResult[BookChunkRecord]] = field(default_factory=list)
    context: str = ""

    @property
    def rag_used(self) -> bool:
        return bool(self.sources)

    def rag_info(self) -> Optional[dict]:
        if not self.sources:
            return None
        return {
            "source_count": len(self.sources),
            "book_title": self.sources[0].item.book_title,
            "top_score": self.sources[0].score,
        }


async def build_augmented_prompt(
    retrieval,
    formatter: ContextFormatter,
    user_query: str,
    base_prompt: str,
    top_k: int = 3,
) -> AugmentedPrompt:
    """
    Retrieve book chunks for `user_query` and append them to `base_prompt`.

    Retrieval errors propagate; callers that must not fail degrade to the
    base prompt themselves.
    """
    results = await retrieval.retrieve(user_query, top_k)
    if not results:
        return AugmentedPrompt(prompt=base_prompt)

    context = formatter.format_context(results)
    return AugmentedPrompt(
        prompt=formatter.augment(base_prompt, context),
        sources=list(results),
        context=context,
    )
