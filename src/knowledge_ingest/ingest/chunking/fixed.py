"""Fixed-size windows with optional sentence snapping."""
from __future__ import annotations

from typing import List, Optional

from ..models import Chunk, Document
from .base import BaseChunker, estimate_fixed_tokens, trimmed_span
from .config import ChunkConfig, ChunkStrategy

SENTENCE_MARKERS = ("。", "！", "？", ".", "!", "?", "\n\n")
SNAP_WINDOW = 200


def find_sentence_boundary(text: str, start: int, window_end: int) -> Optional[int]:
    """Position just after the rightmost sentence marker in the window tail."""

    tail_start = max(start, window_end - SNAP_WINDOW)
    tail = text[tail_start:window_end]
    best: Optional[int] = None
    for marker in SENTENCE_MARKERS:
        index = tail.rfind(marker)
        if index != -1:
            cut = tail_start + index + len(marker)
            if best is None or cut > best:
                best = cut
    return best


def split_fixed_windows(
    text: str,
    start: int,
    end: int,
    *,
    max_size: int,
    overlap: int,
    preserve_context: bool,
    chunk_type: str = ChunkStrategy.FIXED_SIZE.value,
) -> List[Chunk]:
    """Cut ``text[start:end]`` into windows; offsets stay relative to ``text``."""

    chunks: List[Chunk] = []
    position = start
    while position < end:
        window_end = min(position + max_size, end)
        cut = window_end
        if preserve_context and window_end < end:
            snapped = find_sentence_boundary(text, position, window_end)
            if snapped is not None and snapped > position:
                cut = snapped

        span = trimmed_span(text, position, cut)
        if span is not None:
            content = text[span[0] : span[1]]
            chunks.append(
                Chunk(
                    content=content,
                    start_offset=span[0],
                    end_offset=span[1],
                    token_count=estimate_fixed_tokens(content),
                    chunk_type=chunk_type,
                )
            )

        if cut >= end:
            break
        next_position = cut - overlap
        position = next_position if next_position > position else cut
    return chunks


class FixedSizeChunker(BaseChunker):
    strategy = ChunkStrategy.FIXED_SIZE

    def _chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        return split_fixed_windows(
            document.content,
            0,
            len(document.content),
            max_size=config.max_size,
            overlap=config.overlap,
            preserve_context=config.preserve_context,
        )
