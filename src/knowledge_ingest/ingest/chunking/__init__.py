"""Chunking strategies and their configuration."""
from __future__ import annotations

from .base import BaseChunker, Chunker, estimate_code_tokens, estimate_fixed_tokens, estimate_prose_tokens
from .code import CodeChunker, looks_like_code
from .config import STRATEGY_DEFAULTS, ChunkConfig, ChunkStrategy, clamp_overlap, parse_strategy
from .fixed import FixedSizeChunker
from .registry import ChunkerRegistry, default_chunker_registry, default_chunkers
from .semantic import SemanticChunker
from .structure import StructureChunker
from .templates import (
    RecommendationRequest,
    default_templates,
    recommend_chunk_config,
    validate_chunk_config,
)

__all__ = [
    "BaseChunker",
    "ChunkConfig",
    "ChunkStrategy",
    "Chunker",
    "ChunkerRegistry",
    "CodeChunker",
    "FixedSizeChunker",
    "RecommendationRequest",
    "STRATEGY_DEFAULTS",
    "SemanticChunker",
    "StructureChunker",
    "clamp_overlap",
    "default_chunker_registry",
    "default_chunkers",
    "default_templates",
    "estimate_code_tokens",
    "estimate_fixed_tokens",
    "estimate_prose_tokens",
    "looks_like_code",
    "parse_strategy",
    "recommend_chunk_config",
    "validate_chunk_config",
]
