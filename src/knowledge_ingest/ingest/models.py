"""Data models used by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass(slots=True, frozen=True)
class FileMetadata:
    """Descriptor of the uploaded file handed to a parser."""

    filename: str
    content_type: str = ""
    size: int = 0
    sha256: str = ""
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class HeadingInfo:
    level: int
    text: str
    offset: int
    id: str


@dataclass(slots=True)
class Section:
    """A heading together with the text that follows it up to the next heading."""

    title: str
    content: str
    level: int
    start: int
    end: int


@dataclass(slots=True)
class DocumentStructure:
    headings: List[HeadingInfo] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)


@dataclass(slots=True)
class TableInfo:
    caption: str = ""
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


@dataclass(slots=True)
class ImageInfo:
    alt: str
    url: str
    title: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    format: str = "unknown"


@dataclass(slots=True)
class LinkInfo:
    text: str
    url: str
    title: str = ""
    type: str = "internal"


@dataclass(slots=True)
class Document:
    """Parser output: text plus the structure extracted from one input file."""

    title: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    structure: DocumentStructure = field(default_factory=DocumentStructure)
    images: List[ImageInfo] = field(default_factory=list)
    tables: List[TableInfo] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)
    language: str = ""
    word_count: int = 0
    page_count: int = 1


@dataclass(slots=True)
class Chunk:
    """Contiguous slice of a document's content produced by a chunker."""

    content: str
    start_offset: int
    end_offset: int
    token_count: int
    chunk_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def length(self) -> int:
        return len(self.content)


class VersionStatus(str, Enum):
    """Lifecycle states of a document version."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not VersionStatus.PROCESSING


@dataclass(slots=True)
class ChunkRecord:
    """Persistence shape of a chunk handed to the chunk sink."""

    sequence: int
    content: str
    metadata: Dict[str, Any]
    embedding_status: str = "pending"

    @property
    def start_offset(self) -> int:
        return int(self.metadata.get("start_offset", 0))

    @property
    def end_offset(self) -> int:
        return int(self.metadata.get("end_offset", 0))

    @property
    def token_count(self) -> int:
        return int(self.metadata.get("token_count", 0))


@dataclass(slots=True)
class StoredFile:
    """File row owned by the file repository."""

    file_id: str
    filename: str
    blob_ref: str
    content_type: str = ""
    size: int = 0
    sha256: str = ""
    extra: Dict[str, str] = field(default_factory=dict)
    created_at: float = 0.0

    def to_metadata(self) -> FileMetadata:
        return FileMetadata(
            filename=self.filename,
            content_type=self.content_type,
            size=self.size,
            sha256=self.sha256,
            extra=dict(self.extra),
        )


@dataclass(slots=True)
class DocumentVersion:
    """One ingestion of a file under a specific chunk configuration."""

    version_id: str
    file_id: str
    version_no: int
    chunk_config: str
    status: VersionStatus = VersionStatus.PROCESSING
    chunk_count: int = 0
    error: Optional[str] = None
    created_at: float = 0.0
    updated_at: float = 0.0


def chunk_to_record(chunk: Chunk, sequence: int) -> ChunkRecord:
    """Translate a chunk into its persistence record, keeping offsets in the metadata."""

    metadata = dict(chunk.metadata)
    metadata["start_offset"] = chunk.start_offset
    metadata["end_offset"] = chunk.end_offset
    metadata["token_count"] = chunk.token_count
    metadata["type"] = chunk.chunk_type
    return ChunkRecord(sequence=sequence, content=chunk.content, metadata=metadata)
