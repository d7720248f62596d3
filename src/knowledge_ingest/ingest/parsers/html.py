"""HTML parser working directly on the markup with regular expressions."""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

from ..models import Document, DocumentStructure, FileMetadata, HeadingInfo, ImageInfo, LinkInfo, TableInfo
from .base import (
    BaseParser,
    build_sections,
    classify_link,
    decode_text,
    estimate_page_count,
    extract_title_from_filename,
    image_format,
    make_table,
    parse_dimension,
    slugify,
)

LOGGER = logging.getLogger(__name__)

NAMED_ENTITIES: Dict[str, str] = {
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
    "nbsp": " ",
    "copy": "©",
    "reg": "®",
    "trade": "™",
    "hellip": "…",
    "mdash": "—",
    "ndash": "–",
    "lsquo": "‘",
    "rsquo": "’",
    "ldquo": "“",
    "rdquo": "”",
}

_FLAGS = re.IGNORECASE | re.DOTALL
_ENTITY_RE = re.compile(r"&(#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SCRIPT_RE = re.compile(r"<script\b[^>]*>.*?</script\s*>", _FLAGS)
_STYLE_RE = re.compile(r"<style\b[^>]*>.*?</style\s*>", _FLAGS)
_HEAD_RE = re.compile(r"<head\b[^>]*>.*?</head\s*>", _FLAGS)
_TITLE_RE = re.compile(r"<title\b[^>]*>(.*?)</title\s*>", _FLAGS)
_HTML_LANG_RE = re.compile(r"<html\b[^>]*?\blang\s*=\s*[\"']?([^\"'\s>]+)", re.IGNORECASE)
_META_RE = re.compile(r"<meta\b([^>]*)>", re.IGNORECASE)
_HEADING_RE = re.compile(r"<h([1-6])\b([^>]*)>(.*?)</h\1\s*>", _FLAGS)
_TABLE_RE = re.compile(r"<table\b[^>]*>(.*?)</table\s*>", _FLAGS)
_CAPTION_RE = re.compile(r"<caption\b[^>]*>(.*?)</caption\s*>", _FLAGS)
_THEAD_RE = re.compile(r"<thead\b[^>]*>(.*?)</thead\s*>", _FLAGS)
_TBODY_RE = re.compile(r"<tbody\b[^>]*>(.*?)</tbody\s*>", _FLAGS)
_ROW_RE = re.compile(r"<tr\b[^>]*>(.*?)</tr\s*>", _FLAGS)
_CELL_RE = re.compile(r"<(t[dh])\b[^>]*>(.*?)</t[dh]\s*>", _FLAGS)
_IMG_RE = re.compile(r"<img\b([^>]*)/?>", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"<a\b([^>]*)>(.*?)</a\s*>", _FLAGS)
_ATTR_RE = re.compile(r"([\w:-]+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|([^\s\"'>]+))")
_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_CELL_END_RE = re.compile(r"</t[dh]\s*>", re.IGNORECASE)
_BLOCK_TAG_RE = re.compile(
    r"</?(?:p|div|h[1-6]|li|ul|ol|tr|table|thead|tbody|tfoot|caption|section|article|header|footer|"
    r"nav|aside|main|blockquote|pre|hr|dl|dt|dd|figure|figcaption|form|address)\b[^>]*>",
    re.IGNORECASE,
)
_TAG_RE = re.compile(r"<[^>]+>")
_INLINE_SPACE_RE = re.compile(r"[ \t\f\v\xa0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def decode_entities(text: str) -> str:
    """Decode the supported named entities plus numeric and hex references.

    Unknown named entities are left untouched; numeric references outside the
    Unicode range (or naming a surrogate) are dropped.
    """

    def _replace(match: re.Match[str]) -> str:
        token = match.group(1)
        if token.startswith("#"):
            try:
                code_point = int(token[2:], 16) if token[1:2] in ("x", "X") else int(token[1:])
            except ValueError:
                return ""
            if code_point <= 0 or code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
                return ""
            return chr(code_point)
        return NAMED_ENTITIES.get(token, match.group(0))

    return _ENTITY_RE.sub(_replace, text)


def parse_attributes(raw: str) -> Dict[str, str]:
    attributes: Dict[str, str] = {}
    for match in _ATTR_RE.finditer(raw):
        name = match.group(1).lower()
        value = next((group for group in match.groups()[1:] if group is not None), "")
        attributes.setdefault(name, decode_entities(value))
    return attributes


def inner_text(fragment: str) -> str:
    """Plain text of a markup fragment on a single line."""

    text = decode_entities(_TAG_RE.sub(" ", fragment))
    return " ".join(text.split())


def strip_non_content(markup: str) -> str:
    markup = _COMMENT_RE.sub("", markup)
    markup = _SCRIPT_RE.sub("", markup)
    markup = _STYLE_RE.sub("", markup)
    return _HEAD_RE.sub("", markup)


def html_to_text(markup: str) -> str:
    """Render body markup as text with block elements on their own lines."""

    text = _BREAK_RE.sub("\n", markup)
    text = _CELL_END_RE.sub("\t", text)
    text = _BLOCK_TAG_RE.sub("\n", text)
    text = _TAG_RE.sub("", text)
    text = decode_entities(text)
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


class HTMLParser(BaseParser):
    name = "html"
    file_type = "html"
    extensions = (".html", ".htm")

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        markup, encoding = decode_text(data)
        body = strip_non_content(markup)
        text = html_to_text(body)

        headings = self._extract_headings(body, text)
        title = self._extract_title(markup)
        if not title:
            title = next((heading.text for heading in headings if heading.level == 1), "")
        if not title:
            title = extract_title_from_filename(metadata.filename)

        return Document(
            title=title,
            content=text,
            metadata={"encoding": encoding},
            structure=DocumentStructure(headings=headings, sections=build_sections(text, headings)),
            images=self._extract_images(body),
            tables=self._extract_tables(body),
            links=self._extract_links(body),
            language=self._detect_language(markup),
            page_count=estimate_page_count(text),
        )

    @staticmethod
    def _extract_title(markup: str) -> str:
        match = _TITLE_RE.search(_COMMENT_RE.sub("", markup))
        return inner_text(match.group(1)) if match else ""

    @staticmethod
    def _detect_language(markup: str) -> str:
        match = _HTML_LANG_RE.search(markup)
        if match:
            return match.group(1)
        for meta in _META_RE.finditer(markup):
            attributes = parse_attributes(meta.group(1))
            if attributes.get("http-equiv", "").lower() == "content-language" and attributes.get("content"):
                return attributes["content"].split(",")[0].strip()
        return ""

    @staticmethod
    def _extract_headings(body: str, text: str) -> List[HeadingInfo]:
        headings: List[HeadingInfo] = []
        cursor = 0
        for match in _HEADING_RE.finditer(body):
            heading_text = inner_text(match.group(3))
            if not heading_text:
                continue
            offset = text.find(heading_text, cursor)
            if offset == -1:
                LOGGER.debug("Heading %r not found in extracted HTML text", heading_text)
                continue
            cursor = offset + len(heading_text)
            attributes = parse_attributes(match.group(2))
            headings.append(
                HeadingInfo(
                    level=int(match.group(1)),
                    text=heading_text,
                    offset=offset,
                    id=attributes.get("id") or slugify(heading_text),
                )
            )
        return headings

    @staticmethod
    def _row_cells(row: str) -> List[str]:
        return [inner_text(cell.group(2)) for cell in _CELL_RE.finditer(row)]

    def _extract_tables(self, body: str) -> List[TableInfo]:
        tables: List[TableInfo] = []
        for table in _TABLE_RE.finditer(body):
            markup = table.group(1)
            caption_match = _CAPTION_RE.search(markup)
            caption = inner_text(caption_match.group(1)) if caption_match else ""

            headers: List[str] = []
            thead = _THEAD_RE.search(markup)
            if thead:
                header_rows = _ROW_RE.findall(thead.group(1))
                if header_rows:
                    headers = self._row_cells(header_rows[0])
                tbody = _TBODY_RE.search(markup)
                row_source = tbody.group(1) if tbody else markup[thead.end() :]
                rows = [self._row_cells(row) for row in _ROW_RE.findall(row_source)]
            else:
                raw_rows = _ROW_RE.findall(markup)
                rows = [self._row_cells(row) for row in raw_rows]
                if raw_rows and re.search(r"<th\b", raw_rows[0], re.IGNORECASE):
                    headers = rows.pop(0)

            rows = [row for row in rows if row]
            if headers or rows:
                tables.append(make_table(headers, rows, caption=caption))
        return tables

    @staticmethod
    def _extract_images(body: str) -> List[ImageInfo]:
        images: List[ImageInfo] = []
        for match in _IMG_RE.finditer(body):
            attributes = parse_attributes(match.group(1))
            url = attributes.get("src", "")
            if not url:
                continue
            images.append(
                ImageInfo(
                    alt=attributes.get("alt", ""),
                    url=url,
                    title=attributes.get("title", ""),
                    width=parse_dimension(attributes.get("width")),
                    height=parse_dimension(attributes.get("height")),
                    format=image_format(url),
                )
            )
        return images

    @staticmethod
    def _extract_links(body: str) -> List[LinkInfo]:
        links: List[LinkInfo] = []
        for match in _ANCHOR_RE.finditer(body):
            attributes = parse_attributes(match.group(1))
            url: Optional[str] = attributes.get("href")
            if not url:
                continue
            links.append(
                LinkInfo(
                    text=inner_text(match.group(2)) or url,
                    url=url,
                    title=attributes.get("title", ""),
                    type=classify_link(url),
                )
            )
        return links
