"""Code-aware chunker splitting on function, class and method definitions."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..models import Chunk, Document
from .base import BaseChunker, estimate_code_tokens, trimmed_span
from .config import ChunkConfig, ChunkStrategy
from .structure import StructureChunker

CODE_INDICATORS = (
    "function",
    "class",
    "def ",
    "public ",
    "private ",
    "protected ",
    "import ",
    "from ",
    "#include",
    "package ",
    "namespace ",
    "{",
    "}",
    "(",
    ")",
    ";",
    "//",
    "/*",
    "*/",
    "<!--",
    "-->",
)
MIN_INDICATORS = 3
CODE_SPLIT = "code_split"
UNKNOWN_BLOCK = "unknown"

# (block type, start pattern, name pattern)
_BLOCK_PATTERNS: Tuple[Tuple[str, re.Pattern[str], re.Pattern[str]], ...] = (
    ("function", re.compile(r"^function\s+\w+"), re.compile(r"function\s+(\w+)")),
    ("function", re.compile(r"^def\s+\w+"), re.compile(r"def\s+(\w+)")),
    ("class", re.compile(r"^class\s+\w+"), re.compile(r"class\s+(\w+)")),
    ("method", re.compile(r"^(?:public|private|protected)\s+.*\w+\s*\("), re.compile(r"(\w+)\s*\(")),
    ("function", re.compile(r"^\w+\s+\w+\s*\([^)]*\)\s*\{"), re.compile(r"(\w+)\s*\([^)]*\)\s*\{")),
)


def looks_like_code(content: str) -> bool:
    return sum(1 for indicator in CODE_INDICATORS if indicator in content) >= MIN_INDICATORS


def match_block_start(line: str) -> Optional[Tuple[str, str]]:
    """Return ``(block_type, block_name)`` when ``line`` opens a new block."""

    stripped = line.strip()
    for block_type, start_pattern, name_pattern in _BLOCK_PATTERNS:
        if start_pattern.match(stripped):
            name = name_pattern.search(stripped)
            return block_type, name.group(1) if name else UNKNOWN_BLOCK
    return None


@dataclass(slots=True)
class CodeBlock:
    start: int
    end: int
    block_type: str = "code"
    name: str = UNKNOWN_BLOCK


def extract_code_blocks(content: str) -> List[CodeBlock]:
    blocks: List[CodeBlock] = []
    current = CodeBlock(start=0, end=0)
    offset = 0
    for line in content.splitlines(keepends=True):
        opened = match_block_start(line)
        if opened is not None and offset > current.start:
            current.end = offset
            blocks.append(current)
            current = CodeBlock(start=offset, end=offset, block_type=opened[0], name=opened[1])
        elif opened is not None:
            current.block_type, current.name = opened
        offset += len(line)
    current.end = len(content)
    blocks.append(current)
    return blocks


class CodeChunker(BaseChunker):
    strategy = ChunkStrategy.CODE

    def __init__(self, fallback: Optional[BaseChunker] = None) -> None:
        self.fallback = fallback or StructureChunker()

    def _chunk(self, document: Document, config: ChunkConfig) -> List[Chunk]:
        content = document.content
        if not looks_like_code(content):
            return self.fallback.chunk(document, config)

        chunks: List[Chunk] = []
        for block in extract_code_blocks(content):
            span = trimmed_span(content, block.start, block.end)
            if span is None:
                continue
            if span[1] - span[0] <= config.max_size:
                chunks.append(
                    self._make_chunk(
                        content,
                        span,
                        ChunkStrategy.CODE.value,
                        {"block_type": block.block_type, "block_name": block.name},
                    )
                )
            else:
                chunks.extend(self._split_block(content, span, block, config.max_size))
        return chunks

    def _split_block(self, content: str, span: Tuple[int, int], block: CodeBlock, max_size: int) -> List[Chunk]:
        pieces: List[Chunk] = []
        piece_start = span[0]
        offset = span[0]
        for line in content[span[0] : span[1]].splitlines(keepends=True):
            if offset > piece_start and (offset - piece_start) + len(line) > max_size:
                self._append_piece(content, (piece_start, offset), block, pieces)
                piece_start = offset
            offset += len(line)
        self._append_piece(content, (piece_start, span[1]), block, pieces)
        return pieces

    def _append_piece(self, content: str, span: Tuple[int, int], block: CodeBlock, pieces: List[Chunk]) -> None:
        trimmed = trimmed_span(content, *span)
        if trimmed is None:
            return
        pieces.append(
            self._make_chunk(
                content,
                trimmed,
                CODE_SPLIT,
                {"block_type": block.block_type, "parent_block": block.name, "sub_index": len(pieces)},
            )
        )

    @staticmethod
    def _make_chunk(content: str, span: Tuple[int, int], chunk_type: str, metadata: dict) -> Chunk:
        text = content[span[0] : span[1]]
        return Chunk(
            content=text,
            start_offset=span[0],
            end_offset=span[1],
            token_count=estimate_code_tokens(text),
            chunk_type=chunk_type,
            metadata=metadata,
        )
