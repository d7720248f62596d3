"""Paragraph-accumulating chunker."""
from __future__ import annotations

from typing import List, Sequence, Tuple

from ..models import Chunk, Document
from .base import BaseChunker, estimate_prose_tokens, trimmed_span
from .config import ChunkConfig, ChunkStrategy

PARAGRAPH_SEPARATOR = "\n\n"

Span = Tuple[int, int]


def split_on(text: str, start: int, end: int, separator: str) -> List[Span]:
    """Split ``text[start:end]`` after every ``separator``, keeping it with the left piece."""

    pieces: List[Span] = []
    cursor = start
    while cursor < end:
        index = text.find(separator, cursor, end)
        if index == -1:
            pieces.append((cursor, end))
            break
        piece_end = index + len(separator)
        pieces.append((cursor, piece_end))
        cursor = piece_end
    return pieces


def paragraph_spans(text: str) -> List[Span]:
    spans = []
    for start, end in split_on(text, 0, len(text), PARAGRAPH_SEPARATOR):
        span = trimmed_span(text, start, end)
        if span is not None:
            spans.append(span)
    return spans


def split_oversized(text: str, span: Span, separators: Sequence[str], max_size: int) -> List[Span]:
    """Break a span longer than ``max_size`` on the separators, coarsest first.

    Pieces are merged greedily back up to ``max_size``; a piece that is still
    too long is split on the next separator. Without separators left the
    piece is kept whole.
    """

    start, end = span
    if end - start <= max_size or not separators:
        return [span]

    separator, remaining = separators[0], separators[1:]
    merged: List[Span] = []
    for piece in split_on(text, start, end, separator):
        if merged and piece[1] - merged[-1][0] <= max_size:
            merged[-1] = (merged[-1][0], piece[1])
        else:
            merged.append(piece)

    result: List[Span] = []
    for piece in merged:
        trimmed = trimmed_span(text, *piece)
        if trimmed is None:
            continue
        result.extend(split_oversized(text, trimmed, remaining, max_size))
    return result


class SemanticChunker(BaseChunker):
    strategy = ChunkStrategy.SEMANTIC

    def _chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        text = document.content
        extra_separators = [sep for sep in (config.separators or []) if sep and sep != PARAGRAPH_SEPARATOR]

        units: List[Span] = []
        for span in paragraph_spans(text):
            units.extend(split_oversized(text, span, extra_separators, config.max_size))

        chunks: List[Chunk] = []
        current_start = current_end = -1
        for unit_start, unit_end in units:
            if current_start >= 0 and unit_end - current_start > config.max_size:
                chunks.append(self._make_chunk(text, current_start, current_end))
                current_start = -1
            if current_start < 0:
                current_start = unit_start
            current_end = unit_end
        if current_start >= 0:
            chunks.append(self._make_chunk(text, current_start, current_end))
        return chunks

    @staticmethod
    def _make_chunk(text: str, start: int, end: int) -> Chunk:
        content = text[start:end]
        return Chunk(
            content=content,
            start_offset=start,
            end_offset=end,
            token_count=estimate_prose_tokens(content),
            chunk_type=ChunkStrategy.SEMANTIC.value,
        )
