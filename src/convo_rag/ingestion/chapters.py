"""
Chapter Detection

Best-effort heading detection. Lines are matched against a list of compiled
patterns; missed chapters only mean some chunks go unlabeled, so the pattern
list favours precision over recall.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Sequence

DEFAULT_CHAPTER_PATTERNS: List[Pattern[str]] = [
    re.compile(r"^Chapter\s+\d+", re.IGNORECASE),
    re.compile(r"^第\s*[一二三四五六七八九十百零〇\d]+\s*章"),
    re.compile(r"^CHAPTER\s+[IVXLCDM]+\b"),
]


@dataclass(frozen=True)
class Chapter:
    title: str
    line: int


class ChapterDetector:
    """Scans a document line by line for chapter headings."""

    def __init__(self, patterns: Optional[Sequence[Pattern[str]]] = None) -> None:
        self.patterns = list(DEFAULT_CHAPTER_PATTERNS if patterns is None else patterns)

    def add_pattern(self, pattern: str | Pattern[str]) -> None:
        self.patterns.append(re.compile(pattern) if isinstance(pattern, str) else pattern)

    def detect(self, text: str) -> List[Chapter]:
        chapters: List[Chapter] = []
        for line_no, line in enumerate(text.split("\n")):
            stripped = line.strip()
            if stripped and any(p.match(stripped) for p in self.patterns):
                chapters.append(Chapter(title=stripped, line=line_no))
        return chapters


def chapter_for_line(chapters: Sequence[Chapter], line: int) -> Optional[Chapter]:
    """
    The chapter whose heading is at or before `line` and whose successor (if
    any) starts after it. None for lines before the first heading.
    """
    current: Optional[Chapter] = None
    for chapter in chapters:
        if chapter.line > line:
            break
        current = chapter
    return current
