import hashlib
from typing import Dict, List, Optional

import pytest

from convo_rag.embeddings.embedder import Embedder
from convo_rag.embeddings.models import BookChunkRecord, ConversationRecord, SearchResult
from convo_rag.embeddings.registry import IndexRegistry

DIM = 8


def hashed_vector(text: str, dim: int = DIM) -> List[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 + 0.01 for b in digest[:dim]]


class FakeEmbedder(Embedder):
    """
    Deterministic in-process embedder.

    Texts registered in `vectors` embed to that vector; anything else gets a
    stable hash-derived vector. `fail_after` makes the Nth call (1-based)
    and every later one raise the given error.
    """

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(api_key="test-key", model="fake-embedding")
        self.vectors = dict(vectors or {})
        self.fail_after = fail_after
        self.error = error
        self.calls: List[str] = []

    async def embed(self, texts, batch_size: int = 20):
        out = []
        for text in texts:
            self.calls.append(text)
            if self.fail_after is not None and len(self.calls) >= self.fail_after:
                raise self.error
            out.append(self.vectors.get(text) or hashed_vector(text))
        return out


def book_result(
    title: str,
    score: float,
    content: str = "text",
    chapter: Optional[str] = None,
    page: Optional[int] = None,
) -> SearchResult[BookChunkRecord]:
    return SearchResult[BookChunkRecord](
        item=BookChunkRecord(
            book_title=title,
            chapter_title=chapter,
            page_number=page,
            content=content,
        ),
        score=score,
    )


def conversation_result(
    conversation_id: str,
    score: float,
    user_id: str = "user-1",
    scenario: Optional[str] = None,
) -> SearchResult[ConversationRecord]:
    return SearchResult[ConversationRecord](
        item=ConversationRecord(
            conversation_id=conversation_id,
            user_id=user_id,
            summary=f"summary of {conversation_id}",
            scenario=scenario,
        ),
        score=score,
    )


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def registry(tmp_path):
    return IndexRegistry(tmp_path / "vectors")
