"""Plain-text parser with heading, table and link heuristics."""
from __future__ import annotations

import re
from typing import List, Optional

from ..models import Document, DocumentStructure, FileMetadata, LinkInfo, TableInfo
from .base import (
    BaseParser,
    build_sections,
    decode_text,
    estimate_page_count,
    extract_title_from_filename,
    headings_from_lines,
    make_table,
    truncate_title,
)

URL_RE = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")
EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_SPACED_COLUMNS_RE = re.compile(r"\s{3,}")


def split_table_row(line: str) -> Optional[List[str]]:
    """Return the cells of a tabular line, or ``None`` when the line is prose."""

    stripped = line.strip()
    if not stripped:
        return None
    if stripped.count("\t") >= 2:
        return [cell.strip() for cell in stripped.split("\t")]
    if stripped.count("|") >= 2:
        return [cell.strip() for cell in stripped.strip("|").split("|")]
    cells = _SPACED_COLUMNS_RE.split(stripped)
    if len(cells) >= 3:
        return [cell.strip() for cell in cells]
    return None


def extract_tables(text: str) -> List[TableInfo]:
    """Group consecutive tabular lines into tables; the first row is the header."""

    tables: List[TableInfo] = []
    block: List[List[str]] = []
    for line in [*text.splitlines(), ""]:
        cells = split_table_row(line)
        if cells is not None:
            block.append(cells)
            continue
        if block:
            tables.append(make_table(block[0], block[1:]))
            block = []
    return tables


def extract_links(text: str) -> List[LinkInfo]:
    links = [LinkInfo(text=url, url=url, type="external") for url in URL_RE.findall(text)]
    url_spans = [match.span() for match in URL_RE.finditer(text)]
    for match in EMAIL_RE.finditer(text):
        if any(start <= match.start() < end for start, end in url_spans):
            continue
        address = match.group(0)
        links.append(LinkInfo(text=address, url=f"mailto:{address}", type="email"))
    return links


class TextParser(BaseParser):
    name = "text"
    file_type = "text"
    extensions = (".txt", ".text")

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        text, encoding = decode_text(data)

        first_line = next((line.strip() for line in text.splitlines() if line.strip()), "")
        title = truncate_title(first_line) if first_line else extract_title_from_filename(metadata.filename)

        headings = headings_from_lines(text)
        return Document(
            title=title,
            content=text,
            metadata={"encoding": encoding},
            structure=DocumentStructure(headings=headings, sections=build_sections(text, headings)),
            tables=extract_tables(text),
            links=extract_links(text),
            page_count=estimate_page_count(text),
        )
