import pytest

from conftest import FakeEmbedder
from convo_rag.core.errors import ProviderError, UnsupportedFormatError
from convo_rag.ingestion.chunker import Chunker
from convo_rag.ingestion.pipeline import BookIngestionPipeline


def words(tag: str, n: int) -> str:
    return " ".join(f"{tag}{i}" for i in range(n))


@pytest.fixture
def book_file(tmp_path):
    text = "\r\n\r\n".join(
        [
            "Preface",
            words("pre", 30),
            "Chapter 1: Listening",
            words("one", 60),
            words("two", 60),
            "Chapter 2: Asking",
            words("three", 60),
        ]
    )
    path = tmp_path / "book.txt"
    path.write_bytes(text.encode("utf-8"))
    return path


def make_pipeline(registry, embedder=None):
    return BookIngestionPipeline(
        embedder or FakeEmbedder(),
        registry.books(),
        chunker=Chunker(chunk_size=80, overlap=5),
    )


def test_prepare_labels_chunks_with_chapters(registry, book_file):
    records = make_pipeline(registry).prepare(book_file, "Talk Better")

    assert len(records) >= 3
    assert all(r.book_title == "Talk Better" for r in records)
    assert records[0].chapter_title is None
    assert records[-1].chapter_title == "Chapter 2: Asking"
    assert any(r.chapter_title == "Chapter 1: Listening" for r in records)
    assert all("\r" not in r.content for r in records)


@pytest.mark.asyncio
async def test_ingest_stores_every_chunk_and_reports_progress(registry, book_file):
    embedder = FakeEmbedder()
    progress = []

    report = await make_pipeline(registry, embedder).ingest(
        book_file, "Talk Better", on_progress=lambda done, total: progress.append((done, total))
    )

    assert report.chunks_imported == report.chunks_extracted
    assert registry.books().count() == report.chunks_imported
    assert progress[-1] == (report.chunks_extracted, report.chunks_extracted)
    assert len(embedder.calls) == report.chunks_extracted


@pytest.mark.asyncio
async def test_failure_keeps_earlier_chunks(registry, book_file):
    embedder = FakeEmbedder(fail_after=3, error=ProviderError("rate limited"))

    with pytest.raises(ProviderError):
        await make_pipeline(registry, embedder).ingest(book_file, "Talk Better")

    assert registry.books().count() == 2


@pytest.mark.asyncio
async def test_reimport_duplicates_entries(registry, book_file):
    pipeline = make_pipeline(registry)

    first = await pipeline.ingest(book_file, "Talk Better")
    await pipeline.ingest(book_file, "Talk Better")

    assert registry.books().count() == 2 * first.chunks_imported


@pytest.mark.asyncio
async def test_unsupported_format_stores_nothing(registry, tmp_path):
    path = tmp_path / "book.epub"
    path.write_bytes(b"data")

    with pytest.raises(UnsupportedFormatError):
        await make_pipeline(registry).ingest(path, "Talk Better")

    assert registry.books().count() == 0
