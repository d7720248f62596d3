"""Chunk configuration and per-strategy defaults."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..errors import UnknownStrategyError

LOGGER = logging.getLogger(__name__)

MIN_MAX_SIZE = 100
MAX_MAX_SIZE = 10000


class ChunkStrategy(str, Enum):
    FIXED_SIZE = "fixed_size"
    SEMANTIC = "semantic"
    STRUCTURE = "structure"
    CODE = "code"


@dataclass(slots=True, frozen=True)
class StrategyDefaults:
    max_size: int
    overlap: int
    separators: tuple[str, ...]


STRATEGY_DEFAULTS: Dict[ChunkStrategy, StrategyDefaults] = {
    ChunkStrategy.FIXED_SIZE: StrategyDefaults(1500, 150, ("\n\n", "\n", "。", "！", "？", ".", "!", "?")),
    ChunkStrategy.SEMANTIC: StrategyDefaults(2000, 100, ("\n\n", "\n")),
    ChunkStrategy.STRUCTURE: StrategyDefaults(3000, 0, ()),
    ChunkStrategy.CODE: StrategyDefaults(2500, 50, ("\n\n", "\n")),
}


def parse_strategy(value: Any) -> ChunkStrategy:
    """Return the strategy named by ``value`` or raise :class:`UnknownStrategyError`."""

    if isinstance(value, ChunkStrategy):
        return value
    try:
        return ChunkStrategy(str(value).strip().lower())
    except ValueError as exc:
        raise UnknownStrategyError(f"unknown chunking strategy: {value!r}", cause=exc) from exc


def clamp_overlap(overlap: int, max_size: int) -> int:
    """Keep the overlap within ``[0, max_size / 2]``.

    Overlaps above half of the window fall back to a quarter of it.
    """

    if overlap < 0:
        return 0
    if overlap > max_size / 2:
        return max_size // 4
    return overlap


@dataclass(slots=True)
class ChunkConfig:
    """Chunking request as exchanged on the wire.

    ``max_size`` of ``0`` and ``separators`` of ``None`` select the strategy
    defaults.
    """

    strategy: str = ChunkStrategy.FIXED_SIZE.value
    max_size: int = 0
    overlap: int = 0
    separators: Optional[List[str]] = None
    preserve_context: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ChunkConfig":
        separators = data.get("separators")
        return cls(
            strategy=str(data.get("strategy") or ChunkStrategy.FIXED_SIZE.value),
            max_size=int(data.get("max_size") or 0),
            overlap=int(data.get("overlap") or 0),
            separators=list(separators) if separators is not None else None,
            preserve_context=bool(data.get("preserve_context", False)),
        )

    @property
    def strategy_enum(self) -> ChunkStrategy:
        return parse_strategy(self.strategy)

    @property
    def defaults(self) -> StrategyDefaults:
        return STRATEGY_DEFAULTS[self.strategy_enum]

    def resolved(self) -> "ChunkConfig":
        """Fill in strategy defaults and clamp the overlap, honouring any positive ``max_size``."""

        strategy = self.strategy_enum
        defaults = STRATEGY_DEFAULTS[strategy]
        max_size = self.max_size if self.max_size > 0 else defaults.max_size
        separators = list(self.separators) if self.separators is not None else list(defaults.separators)
        return ChunkConfig(
            strategy=strategy.value,
            max_size=max_size,
            overlap=clamp_overlap(self.overlap, max_size),
            separators=separators,
            preserve_context=self.preserve_context,
        )

    def normalized(self) -> "ChunkConfig":
        """Resolve the config and clamp ``max_size`` into the accepted service range."""

        config = self.resolved()
        clamped = min(max(config.max_size, MIN_MAX_SIZE), MAX_MAX_SIZE)
        if clamped != config.max_size:
            LOGGER.info("Clamping max_size %s to %s", config.max_size, clamped)
            config.max_size = clamped
            config.overlap = clamp_overlap(config.overlap, clamped)
        return config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy,
            "max_size": self.max_size,
            "overlap": self.overlap,
            "separators": list(self.separators or []),
            "preserve_context": self.preserve_context,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, payload: str) -> "ChunkConfig":
        return cls.from_mapping(json.loads(payload))


__all__ = [
    "ChunkConfig",
    "ChunkStrategy",
    "MAX_MAX_SIZE",
    "MIN_MAX_SIZE",
    "STRATEGY_DEFAULTS",
    "StrategyDefaults",
    "clamp_overlap",
    "parse_strategy",
]
