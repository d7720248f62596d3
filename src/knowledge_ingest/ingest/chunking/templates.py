"""Chunk configuration templates, validation and recommendations."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

from .config import STRATEGY_DEFAULTS, ChunkConfig, ChunkStrategy

_NAMES = {
    ChunkStrategy.FIXED_SIZE: "Fixed-size chunking",
    ChunkStrategy.SEMANTIC: "Semantic chunking",
    ChunkStrategy.STRUCTURE: "Structure-aware chunking",
    ChunkStrategy.CODE: "Code-aware chunking",
}

_DESCRIPTIONS = {
    ChunkStrategy.FIXED_SIZE: "Split documents into windows of a fixed number of characters",
    ChunkStrategy.SEMANTIC: "Split on paragraph boundaries to keep related text together",
    ChunkStrategy.STRUCTURE: "Split along the document structure (headings and sections)",
    ChunkStrategy.CODE: "Split source code along functions, classes and methods",
}

_USE_CASES = {
    ChunkStrategy.FIXED_SIZE: "General purpose document processing",
    ChunkStrategy.SEMANTIC: "Articles, reports and other prose",
    ChunkStrategy.STRUCTURE: "Technical documentation and papers with clear sections",
    ChunkStrategy.CODE: "Source code and API documentation",
}

_STRUCTURED_MARKUP = ("markdown", "html")
_STRUCTURED_OFFICE = ("pdf", "docx")


@dataclass(slots=True)
class ChunkConfigTemplate:
    name: str
    description: str
    strategy: str
    max_size: int
    overlap: int
    separators: List[str]
    preserve_context: bool
    use_case: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool = True
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class RecommendationRequest:
    document_type: str = ""
    document_length: int = 0
    has_structure: bool = False
    language: str = ""
    purpose: str = ""


@dataclass(slots=True)
class Recommendation:
    recommended_config: ChunkConfigTemplate
    confidence: float
    reason: str
    alternatives: List[ChunkConfigTemplate]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recommended_config": self.recommended_config.to_dict(),
            "confidence": self.confidence,
            "reason": self.reason,
            "alternatives": [template.to_dict() for template in self.alternatives],
        }


def _template(strategy: ChunkStrategy, *, max_size: int, overlap: int, use_case: str) -> ChunkConfigTemplate:
    return ChunkConfigTemplate(
        name=_NAMES[strategy],
        description=_DESCRIPTIONS[strategy],
        strategy=strategy.value,
        max_size=max_size,
        overlap=overlap,
        separators=list(STRATEGY_DEFAULTS[strategy].separators),
        preserve_context=True,
        use_case=use_case,
    )


def default_template(strategy: ChunkStrategy) -> ChunkConfigTemplate:
    defaults = STRATEGY_DEFAULTS[strategy]
    return _template(strategy, max_size=defaults.max_size, overlap=defaults.overlap, use_case=_USE_CASES[strategy])


def default_templates() -> Dict[str, ChunkConfigTemplate]:
    return {strategy.value: default_template(strategy) for strategy in ChunkStrategy}


def validate_chunk_config(config: ChunkConfig) -> ValidationResult:
    """Check a raw (unclamped) config against the accepted ranges."""

    result = ValidationResult()
    strategy = config.strategy
    if strategy not in {item.value for item in ChunkStrategy}:
        result.is_valid = False
        result.errors.append(f"unsupported chunking strategy: {strategy}")

    if config.max_size < 100:
        result.is_valid = False
        result.errors.append("max_size must be at least 100 characters")
    elif config.max_size > 10000:
        result.warnings.append("max_size is very large and may slow down processing")

    if config.overlap < 0:
        result.is_valid = False
        result.errors.append("overlap must not be negative")
    elif config.overlap >= config.max_size:
        result.is_valid = False
        result.errors.append("overlap must be smaller than max_size")
    elif config.overlap > config.max_size / 2:
        result.warnings.append("overlap is large; keep it under 50% of max_size")

    if strategy == ChunkStrategy.FIXED_SIZE.value and config.max_size > 2000:
        result.suggestions.append("fixed-size chunking works best with 1000-2000 character chunks")
    if strategy == ChunkStrategy.SEMANTIC.value and config.overlap > 200:
        result.suggestions.append("semantic chunking rarely needs a large overlap; 100-200 characters is usually enough")
    if strategy == ChunkStrategy.STRUCTURE.value and config.overlap > 0:
        result.suggestions.append("structure chunking follows natural section boundaries and usually needs no overlap")
    return result


def _base_recommendation(request: RecommendationRequest) -> tuple[ChunkStrategy, int, int, str]:
    document_type = request.document_type.strip().lower()
    if document_type in _STRUCTURED_MARKUP:
        if request.has_structure:
            return ChunkStrategy.STRUCTURE, 2500, 0, "the document has a clear heading hierarchy; chunk by structure"
        return ChunkStrategy.SEMANTIC, 2000, 100, "markup documents keep their meaning best with semantic chunking"
    if document_type == "code":
        return ChunkStrategy.CODE, 2000, 50, "code is split along functions and classes"
    if document_type in _STRUCTURED_OFFICE:
        if request.has_structure:
            return ChunkStrategy.STRUCTURE, 3000, 0, "structured documents are best chunked by section"
        return ChunkStrategy.SEMANTIC, 2000, 150, "long documents keep paragraphs intact with semantic chunking"
    return ChunkStrategy.FIXED_SIZE, 1500, 150, "fixed-size chunking balances quality and speed for generic documents"


def recommendation_confidence(request: RecommendationRequest) -> float:
    confidence = 0.7
    if request.document_type and request.document_type != "unknown":
        confidence += 0.2
    if request.has_structure:
        confidence += 0.1
    if 1000 < request.document_length < 100000:
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def recommend_chunk_config(request: RecommendationRequest) -> Recommendation:
    strategy, max_size, overlap, reason = _base_recommendation(request)

    if request.document_length > 50000:
        max_size = min(max_size + 500, 4000)
        reason += "; long document, chunk size increased"
    elif request.document_length < 5000:
        max_size = max(max_size - 300, 800)
        reason += "; short document, chunk size reduced"

    alternatives = [default_template(item) for item in ChunkStrategy if item is not strategy]
    return Recommendation(
        recommended_config=_template(strategy, max_size=max_size, overlap=overlap, use_case=reason),
        confidence=recommendation_confidence(request),
        reason=reason,
        alternatives=alternatives,
    )


__all__ = [
    "ChunkConfigTemplate",
    "Recommendation",
    "RecommendationRequest",
    "ValidationResult",
    "default_template",
    "default_templates",
    "recommend_chunk_config",
    "recommendation_confidence",
    "validate_chunk_config",
]
