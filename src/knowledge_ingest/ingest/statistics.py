"""Statistics and visualization payloads for persisted chunk sets."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from statistics import median, stdev
from typing import Any, Dict, List, Optional, Sequence

from .models import ChunkRecord
from .preview import truncate

DISTRIBUTION_BUCKETS = (
    ("0-500", 0, 500),
    ("500-1000", 500, 1000),
    ("1000-1500", 1000, 1500),
    ("1500-2000", 1500, 2000),
    ("2000+", 2000, None),
)
HISTOGRAM_BINS = 10
VISUALIZATION_CONTENT_CHARS = 100
OVERLAP_CONTENT_CHARS = 50


@dataclass(slots=True)
class DistributionBucket:
    range: str
    count: int


@dataclass(slots=True)
class HistogramBin:
    start: int
    end: int
    count: int = 0


@dataclass(slots=True)
class ChunkStatistics:
    total_chunks: int = 0
    total_length: int = 0
    total_tokens: int = 0
    average_length: int = 0
    average_tokens: int = 0
    min_length: int = 0
    max_length: int = 0
    median_length: float = 0.0
    standard_deviation: float = 0.0
    length_distribution: List[DistributionBucket] = field(default_factory=list)
    token_distribution: List[DistributionBucket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class VisualizationItem:
    index: int
    start_offset: int
    end_offset: int
    length: int
    token_count: int
    start_percent: float
    end_percent: float
    content: str


@dataclass(slots=True)
class ChunkOverlap:
    chunk1_index: int
    chunk2_index: int
    overlap_start: int
    overlap_end: int
    overlap_length: int
    overlap_content: str


@dataclass(slots=True)
class Visualization:
    total_chunks: int
    total_length: int
    average_length: int
    chunks: List[VisualizationItem]
    overlaps: List[ChunkOverlap]
    distribution: List[DistributionBucket]
    length_histogram: List[HistogramBin]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def distribution(values: Sequence[int]) -> List[DistributionBucket]:
    counts = {label: 0 for label, _, _ in DISTRIBUTION_BUCKETS}
    for value in values:
        for label, low, high in DISTRIBUTION_BUCKETS:
            if value >= low and (high is None or value < high):
                counts[label] += 1
                break
    return [DistributionBucket(range=label, count=count) for label, count in counts.items() if count]


def length_histogram(lengths: Sequence[int], bins: int = HISTOGRAM_BINS) -> List[HistogramBin]:
    if not lengths:
        return []
    low, high = min(lengths), max(lengths)
    bin_size = max((high - low) // bins, 1)
    histogram = []
    for index in range(bins):
        start = low + index * bin_size
        end = start + bin_size
        if index == bins - 1:
            end = max(end, high + 1)
        histogram.append(HistogramBin(start=start, end=end))
    for length in lengths:
        histogram[min((length - low) // bin_size, bins - 1)].count += 1
    return histogram


def compute_statistics(records: Sequence[ChunkRecord]) -> ChunkStatistics:
    if not records:
        return ChunkStatistics()

    lengths = [len(record.content) for record in records]
    tokens = [record.token_count for record in records]
    return ChunkStatistics(
        total_chunks=len(records),
        total_length=sum(lengths),
        total_tokens=sum(tokens),
        average_length=sum(lengths) // len(lengths),
        average_tokens=sum(tokens) // len(tokens),
        min_length=min(lengths),
        max_length=max(lengths),
        median_length=float(median(lengths)),
        standard_deviation=stdev(lengths) if len(lengths) > 1 else 0.0,
        length_distribution=distribution(lengths),
        token_distribution=distribution(tokens),
    )


def _percent(offset: int, total: int) -> float:
    return round(offset / total * 100, 2) if total else 0.0


def build_visualization(records: Sequence[ChunkRecord], document_length: Optional[int] = None) -> Visualization:
    """Lay chunks out along the document and report where neighbours overlap.

    Without the document length the furthest chunk end stands in for it.
    """

    ordered = sorted(records, key=lambda record: record.sequence)
    total_length = document_length if document_length is not None else max(
        (record.end_offset for record in ordered), default=0
    )

    items: List[VisualizationItem] = []
    overlaps: List[ChunkOverlap] = []
    for position, record in enumerate(ordered):
        items.append(
            VisualizationItem(
                index=position + 1,
                start_offset=record.start_offset,
                end_offset=record.end_offset,
                length=len(record.content),
                token_count=record.token_count,
                start_percent=_percent(record.start_offset, total_length),
                end_percent=_percent(record.end_offset, total_length),
                content=truncate(record.content, VISUALIZATION_CONTENT_CHARS),
            )
        )
        if position + 1 < len(ordered):
            following = ordered[position + 1]
            if record.end_offset > following.start_offset:
                shared = record.content[max(following.start_offset - record.start_offset, 0) :]
                overlaps.append(
                    ChunkOverlap(
                        chunk1_index=position + 1,
                        chunk2_index=position + 2,
                        overlap_start=following.start_offset,
                        overlap_end=record.end_offset,
                        overlap_length=record.end_offset - following.start_offset,
                        overlap_content=truncate(shared, OVERLAP_CONTENT_CHARS),
                    )
                )

    lengths = [len(record.content) for record in ordered]
    return Visualization(
        total_chunks=len(ordered),
        total_length=total_length,
        average_length=sum(lengths) // len(lengths) if lengths else 0,
        chunks=items,
        overlaps=overlaps,
        distribution=distribution(lengths),
        length_histogram=length_histogram(lengths),
    )


__all__ = [
    "ChunkStatistics",
    "Visualization",
    "build_visualization",
    "compute_statistics",
    "distribution",
    "length_histogram",
]
