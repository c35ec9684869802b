"""Text extraction for book source files, dispatched by file extension."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from docx import Document
from pypdf import PdfReader

from ..core.errors import ExtractionError, UnsupportedFormatError

logger = logging.getLogger("rag.ingest")

ExtractFn = Callable[[Path], str]


def extract_plain_text(path: Path) -> str:
    """Read plain text or markdown verbatim."""
    return path.read_text(encoding="utf-8")


def extract_docx(path: Path) -> str:
    """Raw paragraph text of a Word document; formatting is discarded."""
    doc = Document(str(path))
    return "\n\n".join(para.text for para in doc.paragraphs)


def extract_pdf(path: Path) -> str:
    """Page text of a PDF, pages separated by a blank line."""
    reader = PdfReader(str(path))
    pages: List[str] = []
    for page in reader.pages:
        text = page.extract_text() or ""
        if text.strip():
            pages.append(text)
    return "\n\n".join(pages)


DEFAULT_EXTRACTORS: Dict[str, ExtractFn] = {
    ".txt": extract_plain_text,
    ".md": extract_plain_text,
    ".markdown": extract_plain_text,
    ".docx": extract_docx,
    ".pdf": extract_pdf,
}


class TextExtractor:
    """
    Maps file extensions to extraction functions.

    New formats are added with `register()`; the ingestion pipeline only ever
    calls `extract()`.
    """

    def __init__(self, extractors: Optional[Dict[str, ExtractFn]] = None) -> None:
        self._extractors: Dict[str, ExtractFn] = dict(
            DEFAULT_EXTRACTORS if extractors is None else extractors
        )

    def register(self, extension: str, fn: ExtractFn) -> None:
        self._extractors[_normalize_extension(extension)] = fn

    def supported_extensions(self) -> List[str]:
        return sorted(self._extractors)

    def extract(self, file_path: str | Path) -> str:
        """
        Extract raw text from a document.

        Raises
        ------
        UnsupportedFormatError
            If no extractor is registered for the file's extension.
        ExtractionError
            If the file is missing or cannot be parsed.
        """
        path = Path(file_path)
        extension = _normalize_extension(path.suffix)

        fn = self._extractors.get(extension)
        if fn is None:
            raise UnsupportedFormatError(extension)

        if not path.is_file():
            raise ExtractionError(f"File not found: {path}")

        try:
            text = fn(path)
        except Exception as exc:
            # OSError, UnicodeDecodeError, docx PackageNotFoundError, pypdf PdfReadError, ...
            raise ExtractionError(
                f"Failed to extract text from {path.name}: {type(exc).__name__}"
            ) from exc

        logger.info("Extracted %d characters from %s", len(text), path.name)
        return text


def _normalize_extension(extension: str) -> str:
    extension = extension.lower()
    if extension and not extension.startswith("."):
        extension = "." + extension
    return extension
