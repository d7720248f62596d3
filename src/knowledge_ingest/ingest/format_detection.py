"""Extension-based dispatch from uploaded files to parsers."""
from __future__ import annotations

import logging
import os
import threading
from enum import Enum
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from .errors import UnsupportedFormatError
from .parsers import Parser, default_parsers, get_pdf_text_engine
from .parsers.base import file_extension, normalize_extension

LOGGER = logging.getLogger(__name__)


class DocumentFormat(str, Enum):
    """Supported document formats."""

    PDF = "pdf"
    DOCX = "docx"
    MARKDOWN = "markdown"
    HTML = "html"
    TEXT = "text"


_MIME_MAP = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/markdown": ".md",
    "text/x-markdown": ".md",
    "text/html": ".html",
    "application/xhtml+xml": ".html",
    "text/plain": ".txt",
}


class ParserRegistry:
    """Maps file extensions to parsers.

    Registration happens at startup. The first :meth:`resolve` freezes the
    registry, after which lookups only read the mapping and can run from any
    number of threads.
    """

    def __init__(self, parsers: Iterable[Parser] = ()) -> None:
        self._parsers: Dict[str, Parser] = {}
        self._lock = threading.Lock()
        self._frozen = False
        for parser in parsers:
            self.register(parser)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, parser: Parser) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError("parser registry is frozen; register parsers before the first resolve")
            for extension in parser.extensions:
                key = normalize_extension(extension)
                if key in self._parsers:
                    LOGGER.warning("Replacing parser for %s with %s", key, parser.name)
                self._parsers[key] = parser

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def resolve(self, filename: str, content_type: Optional[str] = None) -> Parser:
        """Return the parser for ``filename``.

        The extension decides; the declared content type is only consulted
        when the filename carries no extension at all.
        """

        if not self._frozen:
            self.freeze()

        extension = file_extension(filename)
        if not extension and content_type:
            mime = content_type.split(";", 1)[0].strip().lower()
            extension = _MIME_MAP.get(mime, "")
        parser = self._parsers.get(extension)
        if parser is None:
            raise UnsupportedFormatError(f"unsupported file format: {filename or content_type or '<unknown>'}")
        return parser

    def detect(self, filename: str, content_type: Optional[str] = None) -> DocumentFormat:
        parser = self.resolve(filename, content_type)
        return DocumentFormat(getattr(parser, "file_type", parser.name))

    def supported_extensions(self) -> List[str]:
        return sorted(self._parsers)


@lru_cache(maxsize=1)
def default_parser_registry() -> ParserRegistry:
    engine = get_pdf_text_engine(os.getenv("PDF_TEXT_ENGINE"))
    LOGGER.debug("Building parser registry with PDF engine %s", engine.name)
    return ParserRegistry(default_parsers(pdf_engine=engine))
