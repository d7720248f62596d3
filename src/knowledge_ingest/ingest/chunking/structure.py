"""Section-per-chunk strategy driven by the parsed document structure."""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from ..models import Chunk, Document, Section
from .base import BaseChunker, estimate_prose_tokens, trimmed_span
from .config import ChunkConfig, ChunkStrategy
from .fixed import split_fixed_windows
from .semantic import SemanticChunker

LOGGER = logging.getLogger(__name__)

STRUCTURE_SPLIT = "structure_split"

_HEADING_MARKS = " \t#=*-_"
_WHITESPACE_RE = re.compile(r"\s+")


def _is_heading_line(line: str, title: str) -> bool:
    text = _WHITESPACE_RE.sub(" ", line.strip())
    index = text.find(title)
    if index == -1:
        return False
    return not text[:index].strip(_HEADING_MARKS) and not text[index + len(title) :].strip(_HEADING_MARKS)


def locate_sections(content: str, sections: List[Section]) -> List[Tuple[int, Section]]:
    """Find where each section heading starts in ``content``.

    Section offsets come from the parser's raw text, so headings are searched
    by title in document order. Only a line holding the title alone (plus
    ``#`` or border marks) counts, so a title quoted in body text is skipped.
    Sections whose title cannot be found are folded into the previous one.
    """

    lines = content.splitlines(keepends=True)
    line_offsets: List[int] = []
    offset = 0
    for line in lines:
        line_offsets.append(offset)
        offset += len(line)

    located: List[Tuple[int, Section]] = []
    next_line = 0
    for section in sections:
        title = _WHITESPACE_RE.sub(" ", section.title.strip())
        if not title:
            continue
        for position in range(next_line, len(lines)):
            if _is_heading_line(lines[position], title):
                located.append((line_offsets[position], section))
                next_line = position + 1
                break
        else:
            LOGGER.debug("Section %r not found in normalized content", title)
    return located


class StructureChunker(BaseChunker):
    strategy = ChunkStrategy.STRUCTURE

    def __init__(self, fallback: Optional[BaseChunker] = None) -> None:
        self.fallback = fallback or SemanticChunker()

    def _chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        content = document.content
        located = locate_sections(content, document.structure.sections)
        if not located:
            return self.fallback.chunk(document, config)

        chunks: List[Chunk] = []
        preamble = trimmed_span(content, 0, located[0][0])
        if preamble is not None:
            chunks.append(self._section_chunk(content, preamble, title="", level=0))

        for index, (start, section) in enumerate(located):
            end = located[index + 1][0] if index + 1 < len(located) else len(content)
            span = trimmed_span(content, start, end)
            if span is None:
                continue
            if span[1] - span[0] <= config.max_size:
                chunk = self._section_chunk(content, span, title=section.title, level=section.level)
                chunk.metadata["section_index"] = index
                chunks.append(chunk)
                continue

            pieces = split_fixed_windows(
                content,
                span[0],
                span[1],
                max_size=config.max_size,
                overlap=config.overlap,
                preserve_context=config.preserve_context,
                chunk_type=STRUCTURE_SPLIT,
            )
            for sub_index, piece in enumerate(pieces):
                piece.metadata.update(
                    {
                        "section_title": section.title,
                        "section_level": section.level,
                        "section_index": index,
                        "sub_index": sub_index,
                    }
                )
            chunks.extend(pieces)
        return chunks

    @staticmethod
    def _section_chunk(content: str, span: Tuple[int, int], *, title: str, level: int) -> Chunk:
        text = content[span[0] : span[1]]
        return Chunk(
            content=text,
            start_offset=span[0],
            end_offset=span[1],
            token_count=estimate_prose_tokens(text),
            chunk_type=ChunkStrategy.STRUCTURE.value,
            metadata={"section_title": title, "section_level": level},
        )
