"""Synchronous chunk previews and strategy comparison; nothing is persisted."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .chunking import ChunkConfig, ChunkerRegistry, default_chunker_registry
from .errors import ChunkError, UnknownStrategyError
from .models import Chunk, Document

LOGGER = logging.getLogger(__name__)

DEFAULT_TRUNCATE_CHARS = 200
PREVIEW_TITLE = "preview"


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


@dataclass(slots=True)
class PreviewChunk:
    content: str
    start_offset: int
    end_offset: int
    token_count: int
    type: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class PreviewResult:
    count: int
    chunks: List[PreviewChunk]
    total_tokens: int
    total_size: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class StrategyComparison:
    strategy: str
    chunk_count: int
    average_length: int
    min_length: int
    max_length: int
    total_tokens: int
    overlap_count: int
    efficiency: float


@dataclass(slots=True)
class ComparisonResult:
    document_length: int
    comparisons: List[StrategyComparison]
    recommended_strategy: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _run_chunker(content: str, config: ChunkConfig, registry: ChunkerRegistry) -> List[Chunk]:
    document = Document(title=PREVIEW_TITLE, content=content)
    chunker = registry.resolve(config.strategy)
    return chunker.chunk(document, config)


def preview_chunks(
    content: str,
    config: ChunkConfig,
    *,
    registry: Optional[ChunkerRegistry] = None,
    truncate_chars: int = DEFAULT_TRUNCATE_CHARS,
) -> PreviewResult:
    """Chunk ``content`` in memory and return the chunks shortened for transport."""

    normalized = config.normalized()
    chunks = _run_chunker(content, normalized, registry or default_chunker_registry())
    preview = [
        PreviewChunk(
            content=truncate(chunk.content, truncate_chars),
            start_offset=chunk.start_offset,
            end_offset=chunk.end_offset,
            token_count=chunk.token_count,
            type=chunk.chunk_type,
            metadata=dict(chunk.metadata),
        )
        for chunk in chunks
    ]
    return PreviewResult(
        count=len(chunks),
        chunks=preview,
        total_tokens=sum(chunk.token_count for chunk in chunks),
        total_size=sum(chunk.length for chunk in chunks),
    )


def summarize_chunks(strategy: str, chunks: Sequence[Chunk], overlap: int, document_length: int) -> StrategyComparison:
    lengths = [chunk.length for chunk in chunks]
    return StrategyComparison(
        strategy=strategy,
        chunk_count=len(chunks),
        average_length=sum(lengths) // len(lengths) if lengths else 0,
        min_length=min(lengths, default=0),
        max_length=max(lengths, default=0),
        total_tokens=sum(chunk.token_count for chunk in chunks),
        overlap_count=len(chunks) - 1 if overlap > 0 and len(chunks) > 1 else 0,
        efficiency=sum(lengths) / document_length if document_length else 0.0,
    )


def recommend_strategy(comparisons: Sequence[StrategyComparison]) -> str:
    """Highest efficiency among non-empty results; the earliest wins ties."""

    best: Optional[StrategyComparison] = None
    for comparison in comparisons:
        if comparison.chunk_count <= 0:
            continue
        if best is None or comparison.efficiency > best.efficiency:
            best = comparison
    return best.strategy if best is not None else ""


def compare_strategies(
    content: str,
    configs: Sequence[ChunkConfig],
    *,
    registry: Optional[ChunkerRegistry] = None,
) -> ComparisonResult:
    registry = registry or default_chunker_registry()
    comparisons: List[StrategyComparison] = []
    for config in configs:
        try:
            normalized = config.normalized()
            chunks = _run_chunker(content, normalized, registry)
        except UnknownStrategyError as exc:
            LOGGER.warning("Skipping comparison for strategy %r: %s", config.strategy, exc)
            continue
        except ChunkError as exc:
            LOGGER.warning("Chunking with strategy %r failed during comparison: %s", config.strategy, exc)
            continue
        comparisons.append(summarize_chunks(normalized.strategy, chunks, normalized.overlap, len(content)))

    return ComparisonResult(
        document_length=len(content),
        comparisons=comparisons,
        recommended_strategy=recommend_strategy(comparisons),
    )


__all__ = [
    "ComparisonResult",
    "PreviewChunk",
    "PreviewResult",
    "StrategyComparison",
    "compare_strategies",
    "preview_chunks",
    "recommend_strategy",
    "summarize_chunks",
    "truncate",
]
