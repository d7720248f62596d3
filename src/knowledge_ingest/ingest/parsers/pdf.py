"""PDF parser built on content-stream text operators."""
from __future__ import annotations

import io
import logging
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from PyPDF2 import PdfReader

from ..errors import InvalidFormatError
from ..models import Document, DocumentStructure, FileMetadata
from .base import BaseParser, build_sections, extract_title_from_filename, headings_from_lines

LOGGER = logging.getLogger(__name__)

BYTES_PER_PAGE = 3000

_PAGE_TOKEN_RE = re.compile(rb"/Type\s*/Page(?![A-Za-z])")
_STRING_LITERAL_RE = re.compile(r"\((?:\\.|[^\\()])*\)", re.DOTALL)
_ESCAPE_RE = re.compile(r"\\([nrt()\\])")
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "(": "(", ")": ")", "\\": "\\"}


def unescape_pdf_string(value: str) -> str:
    return _ESCAPE_RE.sub(lambda match: _ESCAPES[match.group(1)], value)


def extract_text_operators(stream: str) -> str:
    """Collect the strings shown by ``Tj``/``TJ`` operators in a content stream."""

    pieces: List[str] = []
    for line in stream.splitlines():
        if "TJ" in line:
            text = "".join(literal[1:-1] for literal in _STRING_LITERAL_RE.findall(line))
        elif "Tj" in line:
            start = line.find("(")
            end = line.rfind(")")
            if start == -1 or end <= start:
                continue
            text = line[start + 1 : end]
        else:
            continue
        text = unescape_pdf_string(text)
        if text.strip():
            pieces.append(text)
    return " ".join(pieces).strip()


def count_page_tokens(data: bytes) -> int:
    return len(_PAGE_TOKEN_RE.findall(data))


@dataclass(slots=True)
class PdfExtraction:
    pages: List[str] = field(default_factory=list)
    page_count: int = 1
    title: str = ""

    @property
    def text(self) -> str:
        return "\n\n".join(page for page in self.pages if page.strip())


class PdfTextEngine(Protocol):
    """Pluggable text extraction backend for the PDF parser."""

    name: str

    def extract(self, data: bytes) -> PdfExtraction:
        ...


class ContentStreamTextEngine:
    """Scan page content streams for text-showing operators.

    Streams are decoded through PyPDF2 so compressed pages are readable; when
    PyPDF2 cannot open the file the raw bytes are scanned instead.
    """

    name = "content_stream"

    def extract(self, data: bytes) -> PdfExtraction:
        reader = self._open(data)
        if reader is None:
            return self._scan_raw(data)

        pages: List[str] = []
        for index, page in enumerate(reader.pages, start=1):
            try:
                pages.append(self._page_text(page))
            except Exception as error:
                LOGGER.warning("Failed to extract text from PDF page %s: %s", index, error)
                pages.append("")

        extraction = PdfExtraction(pages=pages, page_count=max(1, len(pages)), title=self._title(reader))
        if not extraction.text:
            raw = self._scan_raw(data)
            extraction.pages = raw.pages
        return extraction

    def _page_text(self, page) -> str:
        contents = page.get_contents()
        if contents is None:
            return ""
        return extract_text_operators(contents.get_data().decode("latin-1"))

    def _open(self, data: bytes) -> Optional[PdfReader]:
        try:
            reader = PdfReader(io.BytesIO(data), strict=False)
            len(reader.pages)
        except Exception as error:
            LOGGER.warning("PyPDF2 could not open the PDF; scanning raw bytes (%s)", error)
            return None
        return reader

    @staticmethod
    def _title(reader: PdfReader) -> str:
        try:
            info = reader.metadata
        except Exception as error:
            LOGGER.debug("PDF info dictionary unavailable: %s", error)
            return ""
        title = getattr(info, "title", None) if info is not None else None
        return str(title).strip() if title else ""

    @staticmethod
    def _scan_raw(data: bytes) -> PdfExtraction:
        page_count = count_page_tokens(data) or math.ceil(len(data) / BYTES_PER_PAGE)
        text = extract_text_operators(data.decode("latin-1"))
        return PdfExtraction(pages=[text] if text else [], page_count=max(1, page_count))


class PyPDF2TextEngine(ContentStreamTextEngine):
    """Layout-aware extraction through ``PageObject.extract_text``."""

    name = "pypdf2"

    def _page_text(self, page) -> str:
        return (page.extract_text() or "").strip()


_ENGINES = {
    ContentStreamTextEngine.name: ContentStreamTextEngine,
    PyPDF2TextEngine.name: PyPDF2TextEngine,
}


def get_pdf_text_engine(name: str | None = None) -> PdfTextEngine:
    key = (name or ContentStreamTextEngine.name).strip().lower()
    engine_cls = _ENGINES.get(key)
    if engine_cls is None:
        LOGGER.warning("Unknown PDF text engine %s; using %s", name, ContentStreamTextEngine.name)
        engine_cls = ContentStreamTextEngine
    return engine_cls()


class PDFParser(BaseParser):
    name = "pdf"
    file_type = "pdf"
    extensions = (".pdf",)

    def __init__(self, engine: Optional[PdfTextEngine] = None) -> None:
        self.engine = engine or ContentStreamTextEngine()

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        if data[:4] != b"%PDF":
            raise InvalidFormatError("invalid PDF header")

        extraction = self.engine.extract(data)
        title = extraction.title or extract_title_from_filename(metadata.filename)
        content = extraction.text
        text_extracted = bool(content.strip())
        if not text_extracted:
            LOGGER.info("No text recovered from PDF %s with engine %s", metadata.filename, self.engine.name)
            content = (
                f"PDF document ({title}): no text could be recovered; "
                "a richer PDF text engine is required to extract its content."
            )

        headings = headings_from_lines(content) if text_extracted else []
        return Document(
            title=title,
            content=content,
            metadata={"pdf_engine": self.engine.name, "text_extracted": text_extracted},
            structure=DocumentStructure(headings=headings, sections=build_sections(content, headings)),
            page_count=extraction.page_count,
        )
