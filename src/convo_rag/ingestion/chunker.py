"""
Paragraph Chunker

Greedy paragraph accumulation with word-based overlap.

Algorithm
---------
1. Split the normalized text into paragraphs on blank lines.
2. Append paragraphs to the current chunk while its word count stays within
   `chunk_size`.
3. When the next paragraph would push the chunk past `chunk_size`, close the
   chunk and open a new one seeded with the last `overlap` words of the closed
   chunk's final paragraph, followed by the triggering paragraph.

Paragraphs are never split: a paragraph longer than `chunk_size` ends up whole
in a single oversized chunk.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..config import settings

PARAGRAPH_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Paragraph:
    text: str
    start_line: int
    words: Tuple[str, ...]


@dataclass(frozen=True)
class TextChunk:
    """
    One chunk of source text.

    `start_line` is the line of the chunk's first source paragraph (the
    overlap seed is not counted); `overlap_words` is the seed length.
    """

    content: str
    start_line: int
    word_count: int
    overlap_words: int = 0


def split_paragraphs(text: str) -> List[Paragraph]:
    """Blank-line separated paragraphs, stripped, with their start lines."""
    paragraphs: List[Paragraph] = []
    buffer: List[str] = []
    start = 0

    def flush() -> None:
        body = "\n".join(buffer).strip()
        if body:
            paragraphs.append(Paragraph(body, start, tuple(body.split())))

    for line_no, line in enumerate(text.split("\n")):
        if line.strip():
            if not buffer:
                start = line_no
            buffer.append(line)
        elif buffer:
            flush()
            buffer = []

    if buffer:
        flush()

    return paragraphs


class Chunker:
    """
    Splits document text into overlapping, paragraph-aligned chunks.
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        overlap: Optional[int] = None,
    ) -> None:
        self.chunk_size = settings.chunk_size if chunk_size is None else chunk_size
        self.overlap = settings.chunk_overlap if overlap is None else overlap

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if not 0 <= self.overlap < self.chunk_size:
            raise ValueError(
                f"overlap must be between 0 and chunk_size - 1, got {self.overlap}"
            )

    def chunk(self, text: str) -> List[TextChunk]:
        chunks: List[TextChunk] = []

        current: List[str] = []
        current_words = 0
        overlap_words = 0
        start_line: Optional[int] = None
        last_paragraph: Tuple[str, ...] = ()

        for paragraph in split_paragraphs(text):
            word_count = len(paragraph.words)

            if current and current_words + word_count > self.chunk_size:
                chunks.append(
                    TextChunk(
                        content=PARAGRAPH_SEPARATOR.join(current),
                        start_line=start_line,
                        word_count=current_words,
                        overlap_words=overlap_words,
                    )
                )

                seed = last_paragraph[-self.overlap:] if self.overlap else ()
                current = [" ".join(seed)] if seed else []
                current_words = overlap_words = len(seed)
                start_line = paragraph.start_line

            if start_line is None:
                start_line = paragraph.start_line

            current.append(paragraph.text)
            current_words += word_count
            last_paragraph = paragraph.words

        if current:
            chunks.append(
                TextChunk(
                    content=PARAGRAPH_SEPARATOR.join(current),
                    start_line=start_line,
                    word_count=current_words,
                    overlap_words=overlap_words,
                )
            )

        return chunks
