"""Chunker contract, token estimators and shared span helpers."""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Protocol, Tuple

from ..errors import ChunkError, IngestionError
from ..models import Chunk, Document
from ..parsers.base import count_cjk
from .config import ChunkConfig, ChunkStrategy

LOGGER = logging.getLogger(__name__)

_CODE_TOKEN_RE = re.compile(r"\w+|[^\w\s]")


def estimate_fixed_tokens(text: str) -> int:
    """CJK code points plus whitespace-separated tokens."""

    return count_cjk(text) + len(text.split())


def estimate_prose_tokens(text: str) -> int:
    """Whitespace-separated tokens plus half the code points."""

    return len(text.split()) + len(text) // 2


def estimate_code_tokens(text: str) -> int:
    return len(_CODE_TOKEN_RE.findall(text))


def trimmed_span(text: str, start: int, end: int) -> Optional[Tuple[int, int]]:
    """Shrink ``[start, end)`` past surrounding whitespace; ``None`` when nothing is left."""

    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return start, end


def finalize_chunks(chunks: List[Chunk], strategy: str) -> List[Chunk]:
    """Stamp the output position and requested strategy on every chunk."""

    for index, chunk in enumerate(chunks):
        chunk.metadata["chunk_index"] = index
        chunk.metadata["strategy"] = strategy
    return chunks


class Chunker(Protocol):
    strategy: ChunkStrategy

    def chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        ...


class BaseChunker:
    """Resolves the config, runs ``_chunk`` and numbers the output.

    Typed ingestion errors propagate; anything unexpected becomes a
    :class:`ChunkError`.
    """

    strategy: ChunkStrategy = ChunkStrategy.FIXED_SIZE

    def chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        resolved = config.resolved()
        try:
            chunks = self._chunk(document, resolved)
        except IngestionError:
            raise
        except Exception as exc:
            LOGGER.warning("%s chunker failed: %s", self.strategy.value, exc)
            raise ChunkError(f"{self.strategy.value} chunker failed: {exc}", cause=exc) from exc
        return finalize_chunks(chunks, resolved.strategy)

    def _chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        raise NotImplementedError


__all__ = [
    "BaseChunker",
    "Chunker",
    "estimate_code_tokens",
    "estimate_fixed_tokens",
    "estimate_prose_tokens",
    "finalize_chunks",
    "trimmed_span",
]
