"""
Book import command line tool.

Usage
-----
    convo-rag-import-book <file> <title>

Extracts, chunks and embeds one document into the book index under
VECTOR_STORAGE_PATH, then prints the index statistics. Exits 0 on success and
1 on any failure; a failed import keeps the chunks stored before the failure.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import settings
from .core.errors import RAGError
from .embeddings.embedder import Embedder
from .embeddings.registry import IndexRegistry
from .ingestion.pipeline import BookIngestionPipeline

logger = logging.getLogger("rag.cli")

PROGRESS_EVERY = 10


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convo-rag-import-book",
        description="Import a book (.txt, .md, .docx, .pdf) into the book vector index.",
    )
    parser.add_argument("file", type=Path, help="Path to the book file")
    parser.add_argument("title", help="Book title stored with every chunk")
    parser.add_argument(
        "--storage",
        default=None,
        help="Vector storage root (defaults to VECTOR_STORAGE_PATH)",
    )
    return parser


def _print_progress(imported: int, total: int) -> None:
    if imported % PROGRESS_EVERY == 0 or imported == total:
        print(f"  Imported {imported}/{total} chunks")


async def import_book(
    file_path: Path,
    title: str,
    registry: IndexRegistry,
    embedder: Optional[Embedder] = None,
) -> int:
    """
    Run one import and report to stdout. Returns the process exit code.
    """
    print(f"Importing book: {title}")
    print(f"File: {file_path}")

    pipeline = BookIngestionPipeline(embedder or Embedder(), registry.books())

    try:
        records = pipeline.prepare(file_path, title)
    except RAGError as exc:
        print(f"Error importing {file_path} (extract): {exc}", file=sys.stderr)
        return 1

    print(f"Chunks extracted: {len(records)}")

    try:
        report = await pipeline.store(records, title, file_path, on_progress=_print_progress)
    except RAGError as exc:
        logger.debug("Import failed", exc_info=exc)
        print(f"Error importing {file_path} (import): {exc}", file=sys.stderr)
        return 1

    print(f"Chunks imported: {report.chunks_imported}")

    stats = registry.stats()
    print("Index stats:")
    print(f"  Conversations: {stats.conversations}")
    print(f"  Book chunks:   {stats.book_chunks}")
    print(f"  Total vectors: {stats.total_vectors}")
    print(f"  Dimension:     {stats.dimension}")
    print(f"  Storage path:  {stats.storage_path}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    registry = IndexRegistry(args.storage)
    try:
        return asyncio.run(import_book(args.file, args.title, registry))
    except RAGError as exc:
        # Opening the book index failed before any stage ran
        print(f"Error importing {args.file} (import): {exc}", file=sys.stderr)
        return 1


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
