import pytest

from conftest import FakeEmbedder
from convo_rag.core.errors import ProviderError
from convo_rag.embeddings.models import BookChunkRecord
from convo_rag.retrieval.service import RetrievalService


def add_book(registry, vector, title, content="content"):
    registry.books().insert(vector, BookChunkRecord(book_title=title, content=content))


@pytest.mark.asyncio
async def test_retrieve_on_empty_index_returns_empty(registry):
    service = RetrievalService(FakeEmbedder(), registry)

    assert await service.retrieve("anything", 3) == []


@pytest.mark.asyncio
async def test_retrieve_returns_top_k_by_score(registry):
    embedder = FakeEmbedder(vectors={"listening": [1.0, 0.0, 0.0]})
    add_book(registry, [0.0, 1.0, 0.0], "Far")
    add_book(registry, [0.9, 0.1, 0.0], "Close")
    add_book(registry, [0.6, 0.4, 0.0], "Middle")

    results = await RetrievalService(embedder, registry).retrieve("listening", 2)

    assert [r.item.book_title for r in results] == ["Close", "Middle"]


@pytest.mark.asyncio
async def test_retrieve_diverse_overfetches_and_spreads(registry):
    embedder = FakeEmbedder(vectors={"q": [1.0, 0.0]})
    for i in range(6):
        add_book(registry, [1.0, 0.01 * i], "A", f"a{i}")
    add_book(registry, [1.0, 0.2], "B", "b0")
    add_book(registry, [1.0, 0.3], "C", "c0")

    service = RetrievalService(embedder, registry, overfetch=4)
    results = await service.retrieve_diverse("q", 3)

    assert {r.item.book_title for r in results} == {"A", "B", "C"}


@pytest.mark.asyncio
async def test_store_and_search_conversations_filters_by_user(registry):
    embedder = FakeEmbedder(
        vectors={
            "small talk at work": [1.0, 0.0],
            "coffee chat with a colleague": [0.9, 0.1],
            "salary negotiation": [0.0, 1.0],
            "office chat": [1.0, 0.05],
        }
    )
    service = RetrievalService(embedder, registry)

    await service.store_conversation("c1", "alice", "small talk at work", scenario="office")
    await service.store_conversation("c2", "bob", "coffee chat with a colleague")
    await service.store_conversation("c3", "alice", "salary negotiation")

    everyone = await service.search_conversations("office chat", limit=5)
    alice = await service.search_conversations("office chat", limit=5, user_id="alice")

    assert [r.item.conversation_id for r in everyone][:2] == ["c1", "c2"]
    assert [r.item.conversation_id for r in alice] == ["c1", "c3"]
    assert alice[0].item.scenario == "office"


@pytest.mark.asyncio
async def test_search_dispatches_by_type(registry):
    service = RetrievalService(FakeEmbedder(), registry)
    add_book(registry, [0.5] * 8, "Book")

    books = await service.search("q", type="book", limit=5)
    conversations = await service.search("q", limit=5)

    assert books.type == "book"
    assert books.count == 1
    assert conversations.type == "conversation"
    assert conversations.results == []
    assert conversations.count == 0


@pytest.mark.asyncio
async def test_embedding_failure_propagates(registry):
    embedder = FakeEmbedder(fail_after=1, error=ProviderError("down"))

    with pytest.raises(ProviderError):
        await RetrievalService(embedder, registry).retrieve("q")
