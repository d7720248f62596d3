"""Post-parse text normalisation and language tagging."""
from __future__ import annotations

import re

from .models import Document
from .parsers.base import count_ascii_letters, count_cjk

_MULTIPLE_NEWLINES_RE = re.compile(r"\n{3,}")
_HORIZONTAL_WHITESPACE_RE = re.compile(r"[ \t\f\v]+")


def normalize_text(text: str) -> str:
    """Trim the text, collapse 3+ newlines to a blank line and trim every line."""

    normalized = text.strip()
    normalized = "\n".join(line.strip() for line in normalized.split("\n"))
    # whitespace-only lines become empty above and may form new newline runs
    return _MULTIPLE_NEWLINES_RE.sub("\n\n", normalized)


def collapse_horizontal_whitespace(text: str) -> str:
    return _HORIZONTAL_WHITESPACE_RE.sub(" ", text)


def detect_language(text: str) -> str:
    cjk = count_cjk(text)
    letters = count_ascii_letters(text)
    if cjk > letters:
        return "zh"
    if letters:
        return "en"
    return "unknown"


def count_words(text: str) -> int:
    return len(text.split())


class DocumentNormalizer:
    """Applies :func:`normalize_text` to a parsed document in place."""

    def normalize(self, document: Document) -> Document:
        document.content = normalize_text(document.content)
        document.word_count = count_words(document.content)
        if not document.language:
            document.language = detect_language(document.content)
        return document
