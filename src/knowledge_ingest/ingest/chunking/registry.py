"""Strategy to chunker dispatch."""
from __future__ import annotations

import logging
import threading
from functools import lru_cache
from typing import Dict, Iterable, List

from ..errors import UnknownStrategyError
from .base import Chunker
from .code import CodeChunker
from .config import ChunkStrategy, parse_strategy
from .fixed import FixedSizeChunker
from .semantic import SemanticChunker
from .structure import StructureChunker

LOGGER = logging.getLogger(__name__)


class ChunkerRegistry:
    """Maps chunking strategies to chunkers; frozen on the first resolve."""

    def __init__(self, chunkers: Iterable[Chunker] = ()) -> None:
        self._chunkers: Dict[ChunkStrategy, Chunker] = {}
        self._lock = threading.Lock()
        self._frozen = False
        for chunker in chunkers:
            self.register(chunker)

    def register(self, chunker: Chunker) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError("chunker registry is frozen; register chunkers before the first resolve")
            if chunker.strategy in self._chunkers:
                LOGGER.warning("Replacing chunker for %s", chunker.strategy.value)
            self._chunkers[chunker.strategy] = chunker

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def resolve(self, strategy: str | ChunkStrategy) -> Chunker:
        if not self._frozen:
            self.freeze()
        key = parse_strategy(strategy)
        chunker = self._chunkers.get(key)
        if chunker is None:
            raise UnknownStrategyError(f"no chunker registered for strategy {key.value}")
        return chunker

    def strategies(self) -> List[str]:
        return [strategy.value for strategy in self._chunkers]


def default_chunkers() -> List[Chunker]:
    semantic = SemanticChunker()
    structure = StructureChunker(fallback=semantic)
    return [FixedSizeChunker(), semantic, structure, CodeChunker(fallback=structure)]


@lru_cache(maxsize=1)
def default_chunker_registry() -> ChunkerRegistry:
    return ChunkerRegistry(default_chunkers())
