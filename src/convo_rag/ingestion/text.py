"""Document text normalization."""

import re

_LINE_ENDINGS = re.compile(r"\r\n?")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """
    Unify line endings to "\\n", collapse runs of three or more newlines to a
    single blank line, and trim the document.
    """
    text = _LINE_ENDINGS.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()
