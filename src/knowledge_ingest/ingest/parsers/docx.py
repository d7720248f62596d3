"""DOCX parser using python-docx with a zipfile/ElementTree fallback."""
from __future__ import annotations

import io
import logging
import re
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import docx

from ..errors import InvalidFormatError, ParseError
from ..models import Document, DocumentStructure, FileMetadata, HeadingInfo, LinkInfo, TableInfo
from .base import (
    BaseParser,
    build_sections,
    classify_link,
    extract_title_from_filename,
    headings_from_lines,
    make_table,
    slugify,
)

LOGGER = logging.getLogger(__name__)

_W_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
_R_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
_PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"
_DC_NS = "http://purl.org/dc/elements/1.1/"


def _w(tag: str) -> str:
    return f"{{{_W_NS}}}{tag}"


_W_BODY = _w("body")
_W_P = _w("p")
_W_R = _w("r")
_W_T = _w("t")
_W_TAB = _w("tab")
_W_BR = _w("br")
_W_CR = _w("cr")
_W_PPR = _w("pPr")
_W_PSTYLE = _w("pStyle")
_W_VAL = _w("val")
_W_TBL = _w("tbl")
_W_TR = _w("tr")
_W_TC = _w("tc")
_W_HYPERLINK = _w("hyperlink")
_W_ANCHOR = _w("anchor")
_R_ID = f"{{{_R_NS}}}id"

_ZIP_HEADER_VARIANTS = {(3, 4), (5, 6), (7, 8)}
_HEADING_STYLE_RE = re.compile(r"^heading\s*([1-6])$", re.IGNORECASE)
UNRESOLVED_RELATIONSHIP = "unresolved relationship"


def looks_like_zip(data: bytes) -> bool:
    return len(data) >= 4 and data[:2] == b"PK" and (data[2], data[3]) in _ZIP_HEADER_VARIANTS


@dataclass(slots=True)
class _DocxPackage:
    """Body XML plus package parts, independent of the loader that produced them."""

    body: Any
    relationships: Dict[str, str] = field(default_factory=dict)
    title: str = ""
    author: str = ""
    subject: str = ""
    loader: str = "python-docx"


@dataclass(slots=True)
class _DocxContent:
    blocks: List[str] = field(default_factory=list)
    headings: List[HeadingInfo] = field(default_factory=list)
    tables: List[TableInfo] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)
    offset: int = 0

    def append(self, text: str) -> int:
        if self.blocks:
            self.offset += 2
        start = self.offset
        self.blocks.append(text)
        self.offset += len(text)
        return start

    @property
    def text(self) -> str:
        return "\n\n".join(self.blocks)


class DocxParser(BaseParser):
    name = "docx"
    file_type = "docx"
    extensions = (".docx",)

    def _parse(self, data: bytes, metadata: FileMetadata) -> Document:
        if not looks_like_zip(data):
            raise InvalidFormatError("invalid DOCX header: not a ZIP archive")

        package = self._load_document(data) or self._fallback_load(data)
        content = self._walk_body(package)
        text = content.text

        headings = content.headings or headings_from_lines(text)
        title = package.title or extract_title_from_filename(metadata.filename)
        document_metadata: Dict[str, Any] = {"docx_loader": package.loader}
        if package.author:
            document_metadata["author"] = package.author
        if package.subject:
            document_metadata["subject"] = package.subject

        return Document(
            title=title,
            content=text,
            metadata=document_metadata,
            structure=DocumentStructure(headings=headings, sections=build_sections(text, headings)),
            tables=content.tables,
            links=content.links,
            page_count=max(1, len(text) // 2000),
        )

    def _load_document(self, data: bytes) -> Optional[_DocxPackage]:
        try:
            document = docx.Document(io.BytesIO(data))
        except Exception as error:
            LOGGER.warning("python-docx failed to parse DOCX content: %s", error)
            return None

        properties = document.core_properties
        relationships = {rid: rel.target_ref for rid, rel in document.part.rels.items()}
        return _DocxPackage(
            body=document.element.body,
            relationships=relationships,
            title=(properties.title or "").strip(),
            author=(properties.author or "").strip(),
            subject=(properties.subject or "").strip(),
        )

    def _fallback_load(self, data: bytes) -> _DocxPackage:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                names = set(archive.namelist())
                if "word/document.xml" not in names:
                    raise ParseError("DOCX archive has no word/document.xml")
                document_xml = archive.read("word/document.xml")
                core_xml = archive.read("docProps/core.xml") if "docProps/core.xml" in names else None
                rels_name = "word/_rels/document.xml.rels"
                rels_xml = archive.read(rels_name) if rels_name in names else None
        except zipfile.BadZipFile as error:
            raise ParseError(f"corrupt DOCX archive: {error}", cause=error) from error

        try:
            root = ET.fromstring(document_xml)
        except ET.ParseError as error:
            raise ParseError(f"malformed word/document.xml: {error}", cause=error) from error
        body = root.find(_W_BODY)
        package = _DocxPackage(body=body if body is not None else root, loader="zipfile")

        if rels_xml:
            package.relationships = self._read_relationships(rels_xml)
        if core_xml:
            self._read_core_properties(core_xml, package)
        return package

    @staticmethod
    def _read_relationships(rels_xml: bytes) -> Dict[str, str]:
        try:
            root = ET.fromstring(rels_xml)
        except ET.ParseError as error:
            LOGGER.warning("Ignoring malformed DOCX relationships part: %s", error)
            return {}
        return {
            rel.get("Id", ""): rel.get("Target", "")
            for rel in root.iter(f"{{{_PKG_REL_NS}}}Relationship")
            if rel.get("Id")
        }

    @staticmethod
    def _read_core_properties(core_xml: bytes, package: _DocxPackage) -> None:
        try:
            root = ET.fromstring(core_xml)
        except ET.ParseError as error:
            LOGGER.warning("Ignoring malformed DOCX core properties: %s", error)
            return
        for attribute, tag in (("title", "title"), ("author", "creator"), ("subject", "subject")):
            node = root.find(f"{{{_DC_NS}}}{tag}")
            if node is not None and node.text:
                setattr(package, attribute, node.text.strip())

    def _walk_body(self, package: _DocxPackage) -> _DocxContent:
        content = _DocxContent()
        for child in package.body:
            if child.tag == _W_P:
                self._add_paragraph(child, package, content)
            elif child.tag == _W_TBL:
                self._add_table(child, package, content)
            else:
                for paragraph in child.iter(_W_P):
                    self._add_paragraph(paragraph, package, content)
        return content

    def _add_paragraph(self, paragraph: Any, package: _DocxPackage, content: _DocxContent) -> None:
        self._collect_links(paragraph, package, content)
        text = _paragraph_text(paragraph).strip()
        if not text:
            return
        start = content.append(text)
        level = _heading_level(paragraph)
        if level is not None:
            content.headings.append(HeadingInfo(level=level, text=text, offset=start, id=slugify(text)))

    def _add_table(self, table: Any, package: _DocxPackage, content: _DocxContent) -> None:
        rows: List[List[str]] = []
        for row in table.findall(_W_TR):
            cells = []
            for cell in row.findall(_W_TC):
                self._collect_links(cell, package, content)
                parts = [_paragraph_text(paragraph).strip() for paragraph in cell.iter(_W_P)]
                cells.append(" ".join(part for part in parts if part))
            rows.append(cells)
        if not rows:
            return
        content.tables.append(make_table(rows[0], rows[1:]))
        lines = ["\t".join(cells) for cells in rows if any(cells)]
        if lines:
            content.append("\n".join(lines))

    def _collect_links(self, element: Any, package: _DocxPackage, content: _DocxContent) -> None:
        for hyperlink in element.iter(_W_HYPERLINK):
            text = "".join(node.text or "" for node in hyperlink.iter(_W_T)).strip()
            rid = hyperlink.get(_R_ID)
            anchor = hyperlink.get(_W_ANCHOR)
            title = ""
            if rid:
                url = package.relationships.get(rid, "")
                if not url:
                    url = f"rel:{rid}"
                    title = UNRESOLVED_RELATIONSHIP
            elif anchor:
                url = f"#{anchor}"
            else:
                continue
            content.links.append(LinkInfo(text=text or url, url=url, title=title, type=classify_link(url)))


def _paragraph_text(paragraph: Any) -> str:
    parts: List[str] = []
    for run in paragraph.iter(_W_R):
        for node in run:
            if node.tag == _W_T:
                parts.append(node.text or "")
            elif node.tag == _W_TAB:
                parts.append("\t")
            elif node.tag in (_W_BR, _W_CR):
                parts.append("\n")
    return "".join(parts)


def _heading_level(paragraph: Any) -> Optional[int]:
    properties = paragraph.find(_W_PPR)
    if properties is None:
        return None
    style = properties.find(_W_PSTYLE)
    if style is None:
        return None
    value = (style.get(_W_VAL) or "").strip()
    if value.lower() == "title":
        return 1
    match = _HEADING_STYLE_RE.match(value)
    return int(match.group(1)) if match else None
