"""
Book Ingestion Pipeline

Turns one source document into BookChunkRecord entries in the book index.

Workflow
--------
1. Extract raw text (dispatched by file extension).
2. Normalize line endings and blank lines.
3. Detect chapter headings.
4. Chunk paragraphs with overlap.
5. Label each chunk with its chapter.
6. For each chunk: embed, then insert into the book index.

Failure Semantics
-----------------
- Extraction failures abort the run before anything is written.
- A failure while embedding or inserting chunk i aborts the remaining chunks
  but leaves chunks 0..i-1 in the index. Re-running the import is safe and
  produces duplicate entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from .chapters import ChapterDetector, chapter_for_line
from .chunker import Chunker
from .extractors import TextExtractor
from .text import normalize_text
from ..embeddings.embedder import Embedder
from ..embeddings.index import FaissIndex
from ..embeddings.models import BookChunkRecord

logger = logging.getLogger("rag.ingest")

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class IngestionReport:
    book_title: str
    file_path: str
    chunks_extracted: int
    chunks_imported: int


class BookIngestionPipeline:
    """
    Offline importer for book content.
    """

    def __init__(
        self,
        embedder: Embedder,
        index: FaissIndex,
        extractor: Optional[TextExtractor] = None,
        chunker: Optional[Chunker] = None,
        chapter_detector: Optional[ChapterDetector] = None,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.extractor = extractor or TextExtractor()
        self.chunker = chunker or Chunker()
        self.chapter_detector = chapter_detector or ChapterDetector()

    def prepare(self, file_path: str | Path, book_title: str) -> List[BookChunkRecord]:
        """
        Extract, normalize, chunk and label a document without storing it.

        Raises
        ------
        UnsupportedFormatError, ExtractionError
            If the document cannot be read.
        """
        text = normalize_text(self.extractor.extract(file_path))

        chapters = self.chapter_detector.detect(text)
        chunks = self.chunker.chunk(text)

        logger.info(
            "Prepared '%s': %d chunks, %d chapters detected",
            book_title,
            len(chunks),
            len(chapters),
        )

        records: List[BookChunkRecord] = []
        for chunk in chunks:
            chapter = chapter_for_line(chapters, chunk.start_line)
            records.append(
                BookChunkRecord(
                    book_title=book_title,
                    chapter_title=chapter.title if chapter else None,
                    content=chunk.content,
                )
            )
        return records

    async def ingest(
        self,
        file_path: str | Path,
        book_title: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestionReport:
        """
        Run the full pipeline for one document.

        Parameters
        ----------
        on_progress : Optional[Callable[[int, int], None]]
            Called with (imported, total) after every stored chunk.

        Raises
        ------
        UnsupportedFormatError, ExtractionError
            Before any chunk is stored.
        ConfigurationError, ProviderError, StorageError
            While storing chunks; earlier chunks stay in the index.
        """
        records = self.prepare(file_path, book_title)
        return await self.store(records, book_title, file_path, on_progress)

    async def store(
        self,
        records: List[BookChunkRecord],
        book_title: str,
        file_path: str | Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestionReport:
        """
        Embed and insert prepared records one at a time, in order.

        A failure on record i leaves records 0..i-1 stored.
        """
        total = len(records)

        imported = 0
        for record in records:
            vector = await self.embedder.embed_text(record.content)
            self.index.insert(vector, record)
            imported += 1
            if on_progress is not None:
                on_progress(imported, total)

        logger.info("Imported %d/%d chunks for '%s'", imported, total, book_title)

        return IngestionReport(
            book_title=book_title,
            file_path=str(file_path),
            chunks_extracted=total,
            chunks_imported=imported,
        )
