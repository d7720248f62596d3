"""Markdown parser: ATX headings, pipe tables, images and links."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Tuple

import yaml

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
    slugify,
)

LOGGER = logging.getLogger(__name__)

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_FENCED_BLOCK_RE = re.compile(r"^ {0,3}(```|~~~).*?(?:^ {0,3}\1[^\n]*$|\Z)", re.MULTILINE | re.DOTALL)
_ATX_HEADING_RE = re.compile(r"^( {0,3})(#{1,6})[ \t]+(.*?)(?:[ \t]+#+)?[ \t]*$")
_TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-+:?\s*(?:\|\s*:?-+:?\s*)*\|?\s*$")
_IMAGE_RE = re.compile(r"!\[([^\]]*)\]\(\s*<?([^)\s>]+)>?(?:\s+[\"']([^\"']*)[\"'])?\s*\)")
_INLINE_LINK_RE = re.compile(r"(?<!!)\[([^\]]+)\]\(\s*<?([^)\s>]+)>?(?:\s+[\"']([^\"']*)[\"'])?\s*\)")
_REFERENCE_LINK_RE = re.compile(r"(?<!!)\[([^\]]+)\]\[([^\]]*)\]")
_REFERENCE_DEF_RE = re.compile(
    r"^ {0,3}\[([^\]]+)\]:\s*<?(\S+?)>?(?:\s+[\"'(]([^\"')]*)[\"')])?\s*$", re.MULTILINE
)


def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a leading YAML front-matter block from the Markdown body."""

    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as error:
        LOGGER.warning("Ignoring invalid Markdown front matter: %s", error)
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    front_matter = {
        str(key): value if isinstance(value, (str, int, float, bool)) or value is None else str(value)
        for key, value in data.items()
    }
    return front_matter, text[match.end() :]


def _mask_code_blocks(text: str) -> str:
    """Blank out fenced code blocks while keeping every offset in place."""

    def _blank(match: re.Match[str]) -> str:
        return re.sub(r"[^\n]", " ", match.group(0))

    return _FENCED_BLOCK_RE.sub(_blank, text)


def _split_row(line: str) -> List[str]:
    stripped = line.strip()
    if stripped.startswith("|"):
        stripped = stripped[1:]
    if stripped.endswith("|"):
        stripped = stripped[:-1]
    return [cell.strip() for cell in stripped.split("|")]


class MarkdownParser(BaseParser):
    name = "markdown"
    file_type = "markdown"
    extensions = (".md", ".markdown")

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        raw_text, encoding = decode_text(data)
        front_matter, text = split_front_matter(raw_text)
        scan = _mask_code_blocks(text)

        headings = self._extract_headings(scan, text)
        title = next((heading.text for heading in headings if heading.level == 1), "")
        if not title:
            title = str(front_matter.get("title") or "").strip()
        if not title:
            title = extract_title_from_filename(metadata.filename)

        document_metadata: Dict[str, Any] = {"encoding": encoding}
        if front_matter:
            document_metadata["front_matter"] = front_matter

        return Document(
            title=title,
            content=text,
            metadata=document_metadata,
            structure=DocumentStructure(headings=headings, sections=build_sections(text, headings)),
            images=self._extract_images(scan, text),
            tables=self._extract_tables(scan),
            links=self._extract_links(scan, text),
            page_count=estimate_page_count(text),
        )

    @staticmethod
    def _extract_headings(scan: str, text: str) -> List[HeadingInfo]:
        headings: List[HeadingInfo] = []
        offset = 0
        for line in scan.splitlines(keepends=True):
            match = _ATX_HEADING_RE.match(line.rstrip("\r\n"))
            if match and match.group(3).strip():
                start = offset + len(match.group(1))
                heading_text = text[offset + match.start(3) : offset + match.end(3)].strip()
                headings.append(
                    HeadingInfo(
                        level=len(match.group(2)),
                        text=heading_text,
                        offset=start,
                        id=slugify(heading_text),
                    )
                )
            offset += len(line)
        return headings

    @staticmethod
    def _extract_tables(scan: str) -> List[TableInfo]:
        tables: List[TableInfo] = []
        lines = scan.splitlines()
        index = 0
        while index < len(lines) - 1:
            header_line = lines[index]
            if "|" in header_line and _TABLE_SEPARATOR_RE.match(lines[index + 1]):
                headers = _split_row(header_line)
                rows: List[List[str]] = []
                index += 2
                while index < len(lines) and "|" in lines[index] and lines[index].strip():
                    rows.append(_split_row(lines[index]))
                    index += 1
                tables.append(make_table(headers, rows))
                continue
            index += 1
        return tables

    @staticmethod
    def _extract_images(scan: str, text: str) -> List[ImageInfo]:
        images: List[ImageInfo] = []
        for match in _IMAGE_RE.finditer(scan):
            original = _IMAGE_RE.match(text, match.start()) or match
            url = original.group(2)
            images.append(
                ImageInfo(
                    alt=original.group(1).strip(),
                    url=url,
                    title=(original.group(3) or "").strip(),
                    format=image_format(url),
                )
            )
        return images

    @staticmethod
    def _extract_links(scan: str, text: str) -> List[LinkInfo]:
        definitions: Dict[str, Tuple[str, str]] = {}
        for match in _REFERENCE_DEF_RE.finditer(scan):
            definitions.setdefault(match.group(1).strip().lower(), (match.group(2), match.group(3) or ""))

        found: List[Tuple[int, LinkInfo]] = []
        for match in _INLINE_LINK_RE.finditer(scan):
            url = match.group(2)
            found.append(
                (
                    match.start(),
                    LinkInfo(
                        text=match.group(1).strip(),
                        url=url,
                        title=(match.group(3) or "").strip(),
                        type=classify_link(url),
                    ),
                )
            )
        for match in _REFERENCE_LINK_RE.finditer(scan):
            label = (match.group(2) or match.group(1)).strip().lower()
            definition = definitions.get(label)
            if definition is None:
                LOGGER.debug("Unresolved Markdown link reference: %s", label)
                continue
            url, title = definition
            found.append(
                (
                    match.start(),
                    LinkInfo(text=match.group(1).strip(), url=url, title=title.strip(), type=classify_link(url)),
                )
            )
        found.sort(key=lambda item: item[0])
        return [link for _, link in found]
