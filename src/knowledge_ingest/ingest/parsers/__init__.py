"""Format parsers turning uploaded bytes into :class:`Document` objects."""
from __future__ import annotations

from typing import List, Optional

from .base import BaseParser, Parser, ParserSource, extract_title_from_filename
from .docx import DocxParser
from .html import HTMLParser
from .markdown import MarkdownParser
from .pdf import ContentStreamTextEngine, PDFParser, PdfTextEngine, PyPDF2TextEngine, get_pdf_text_engine
from .text import TextParser


def default_parsers(pdf_engine: Optional[PdfTextEngine] = None) -> List[BaseParser]:
    return [
        PDFParser(engine=pdf_engine),
        DocxParser(),
        MarkdownParser(),
        HTMLParser(),
        TextParser(),
    ]


__all__ = [
    "BaseParser",
    "ContentStreamTextEngine",
    "DocxParser",
    "HTMLParser",
    "MarkdownParser",
    "PDFParser",
    "Parser",
    "ParserSource",
    "PdfTextEngine",
    "PyPDF2TextEngine",
    "TextParser",
    "default_parsers",
    "extract_title_from_filename",
    "get_pdf_text_engine",
]
