"""Shared parser plumbing and extraction helpers."""
from __future__ import annotations

import logging
import re
from pathlib import PurePath
from typing import Any, BinaryIO, Dict, List, Optional, Protocol, Sequence, Union

from ..errors import IngestionError, ParseError
from ..models import Document, FileMetadata, HeadingInfo, Section, TableInfo

LOGGER = logging.getLogger(__name__)

ParserSource = Union[bytes, bytearray, memoryview, BinaryIO]

DEFAULT_TITLE = "Untitled"
TITLE_MAX_CHARS = 50
CHARS_PER_PAGE = 2000

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"\s+")
_ASCII_LETTER_RE = re.compile(r"[A-Za-z]")
_CJK_RE = re.compile(r"[\u4e00-\u9fff]")

_NUMBERED_HEADING_RE = re.compile(r"^\d+[.)]\s+.+")
_CN_NUMERAL_HEADING_RE = re.compile(r"^[一二三四五六七八九十]+[、．]\s*.+")
_CHAPTER_HEADING_RE = re.compile(r"^第[一二三四五六七八九十\d]+([章节部分])\s*.+")
_BORDER_CHARS = "=*-_"

_IMAGE_FORMATS = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".png": "png",
    ".gif": "gif",
    ".svg": "svg",
    ".webp": "webp",
}


class Parser(Protocol):
    """Turns the bytes of one file into a :class:`Document`."""

    name: str
    extensions: tuple[str, ...]

    def parse(self, source: ParserSource, metadata: FileMetadata) -> Document:
        ...


def read_source(source: ParserSource) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    data = source.read()
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


class BaseParser:
    """Template for parsers: read the input, parse it and annotate the metadata.

    Typed ingestion errors raised by ``_parse`` propagate unchanged; anything
    else is reported as a :class:`ParseError` carrying a short reason.
    """

    name = "base"
    file_type = "unknown"
    extensions: tuple[str, ...] = ()

    def parse(self, source: ParserSource, metadata: FileMetadata) -> Document:
        try:
            data = read_source(source)
        except OSError as exc:
            raise ParseError(f"failed to read {metadata.filename}: {exc}", cause=exc) from exc

        try:
            document = self._parse(data, metadata)
        except IngestionError:
            raise
        except Exception as exc:
            LOGGER.warning("%s parser failed for %s: %s", self.name, metadata.filename, exc)
            raise ParseError(f"{self.name} parser failed: {exc}", cause=exc) from exc

        document.metadata = {**self._base_metadata(metadata, len(data)), **document.metadata}
        return document

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        raise NotImplementedError

    def _base_metadata(self, metadata: FileMetadata, size: int) -> Dict[str, Any]:
        base: Dict[str, Any] = {
            "file_type": self.file_type,
            "filename": metadata.filename,
            "file_size": metadata.size or size,
            "sha256": metadata.sha256,
            "content_type": metadata.content_type,
        }
        if metadata.extra:
            base["extra"] = dict(metadata.extra)
        return base


def file_extension(filename: str) -> str:
    return PurePath(filename or "").suffix.lower()


def normalize_extension(extension: str) -> str:
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return extension


def extract_title_from_filename(filename: str) -> str:
    """Derive a title from a filename: drop the extension, turn ``_``/``-`` into spaces."""

    name = PurePath(filename or "").name
    stem = PurePath(name).stem if PurePath(name).suffix else name
    title = stem.replace("_", " ").replace("-", " ").strip()
    return title or DEFAULT_TITLE


def truncate_title(line: str) -> str:
    if len(line) > TITLE_MAX_CHARS:
        return line[:TITLE_MAX_CHARS] + "…"
    return line


def slugify(text: str) -> str:
    slug = _SLUG_STRIP_RE.sub("", text.strip().lower())
    return _SLUG_SPACE_RE.sub("-", slug.strip())


def classify_link(url: str) -> str:
    lowered = url.strip().lower()
    if lowered.startswith(("http://", "https://")):
        return "external"
    if lowered.startswith("#"):
        return "anchor"
    if lowered.startswith("mailto:"):
        return "email"
    if lowered.startswith("tel:"):
        return "phone"
    return "internal"


def image_format(url: str) -> str:
    path = url.split("#", 1)[0].split("?", 1)[0]
    return _IMAGE_FORMATS.get(PurePath(path).suffix.lower(), "unknown")


def parse_dimension(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match else None


def make_table(headers: Sequence[str], rows: Sequence[Sequence[str]], caption: str = "") -> TableInfo:
    """Build a rectangular table, right-padding short rows and headers with empty cells."""

    width = max([len(headers), *(len(row) for row in rows)], default=0)
    padded_headers = list(headers) + [""] * (width - len(headers))
    padded_rows = [list(row) + [""] * (width - len(row)) for row in rows]
    return TableInfo(caption=caption, headers=padded_headers, rows=padded_rows)


def count_cjk(text: str) -> int:
    return len(_CJK_RE.findall(text))


def count_ascii_letters(text: str) -> int:
    return len(_ASCII_LETTER_RE.findall(text))


def decode_text(data: bytes) -> tuple[str, str]:
    """Decode text bytes, returning the text and the detected encoding label.

    Valid UTF-8 is used verbatim. Otherwise the bytes are read as GB18030 when
    that succeeds and Chinese dominates; anything else is decoded as UTF-8
    with replacement characters.
    """

    try:
        return data.decode("utf-8"), "UTF-8"
    except UnicodeDecodeError:
        pass
    try:
        candidate = data.decode("gb18030")
    except UnicodeDecodeError:
        candidate = ""
    if candidate and count_cjk(candidate) > count_ascii_letters(candidate):
        return candidate, "GBK"
    return data.decode("utf-8", errors="replace"), "Unknown"


def estimate_page_count(text: str) -> int:
    return max(1, len(text) // CHARS_PER_PAGE)


def detect_heading_level(line: str) -> Optional[int]:
    """Heading heuristics for unmarked text; returns a level or ``None``."""

    line = line.strip()
    if len(line) < 3 or len(line) > 100:
        return None

    chapter = _CHAPTER_HEADING_RE.match(line)
    if chapter:
        return 2 if chapter.group(1) == "节" else 1
    if _CN_NUMERAL_HEADING_RE.match(line):
        return 1
    if _NUMBERED_HEADING_RE.match(line):
        return 2
    if line.upper() == line and len(line.split()) <= 10 and _ASCII_LETTER_RE.search(line):
        return 1
    if line[0] in _BORDER_CHARS and line[-1] in _BORDER_CHARS and line.strip(" \t" + _BORDER_CHARS):
        return 1
    return None


def headings_from_lines(text: str) -> List[HeadingInfo]:
    headings: List[HeadingInfo] = []
    offset = 0
    for line in text.splitlines(keepends=True):
        level = detect_heading_level(line)
        if level is not None:
            stripped = line.strip()
            heading_text = stripped
            if stripped[0] in _BORDER_CHARS:
                heading_text = stripped.strip(" \t" + _BORDER_CHARS)
            indent = len(line) - len(line.lstrip())
            headings.append(
                HeadingInfo(
                    level=level,
                    text=heading_text,
                    offset=offset + indent,
                    id=f"heading-{len(headings)}",
                )
            )
        offset += len(line)
    return headings


def build_sections(text: str, headings: Sequence[HeadingInfo]) -> List[Section]:
    """One section per heading, spanning up to the next heading of any level."""

    ordered = sorted(headings, key=lambda heading: heading.offset)
    sections: List[Section] = []
    for index, heading in enumerate(ordered):
        start = heading.offset
        end = ordered[index + 1].offset if index + 1 < len(ordered) else len(text)
        if end < start:
            continue
        line_end = text.find("\n", start, end)
        body_start = end if line_end == -1 else line_end + 1
        sections.append(
            Section(
                title=heading.text,
                content=text[body_start:end].strip(),
                level=heading.level,
                start=start,
                end=end,
            )
        )
    return sections
