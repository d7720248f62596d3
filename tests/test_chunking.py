from __future__ import annotations

import pytest

from knowledge_ingest.ingest.chunking import (
    ChunkConfig,
    ChunkerRegistry,
    ChunkStrategy,
    CodeChunker,
    FixedSizeChunker,
    SemanticChunker,
    StructureChunker,
    clamp_overlap,
    default_chunkers,
    parse_strategy,
)
from knowledge_ingest.ingest.errors import UnknownStrategyError
from knowledge_ingest.ingest.models import Document, FileMetadata
from knowledge_ingest.ingest.parsers import MarkdownParser


def _markdown(text: str) -> Document:
    return MarkdownParser().parse(text.encode("utf-8"), FileMetadata(filename="doc.md"))


def _assert_offsets(document: Document, chunks) -> None:
    for chunk in chunks:
        assert document.content[chunk.start_offset : chunk.end_offset] == chunk.content
        assert chunk.content == chunk.content.strip()


def test_parse_strategy_accepts_case_and_whitespace() -> None:
    assert parse_strategy(" Semantic ") is ChunkStrategy.SEMANTIC
    with pytest.raises(UnknownStrategyError):
        parse_strategy("paragraphs")


@pytest.mark.parametrize(
    ("overlap", "max_size", "expected"),
    [(-5, 100, 0), (50, 100, 50), (60, 100, 25), (10, 100, 10)],
)
def test_clamp_overlap(overlap: int, max_size: int, expected: int) -> None:
    assert clamp_overlap(overlap, max_size) == expected


def test_resolved_fills_defaults_and_keeps_small_max_size() -> None:
    resolved = ChunkConfig(strategy="SEMANTIC").resolved()
    assert resolved.strategy == "semantic"
    assert resolved.max_size == 2000
    assert resolved.separators == ["\n\n", "\n"]

    small = ChunkConfig(strategy="fixed_size", max_size=20, overlap=15).resolved()
    assert small.max_size == 20
    assert small.overlap == 5


def test_normalized_clamps_max_size_into_service_range() -> None:
    assert ChunkConfig(max_size=50).normalized().max_size == 100
    assert ChunkConfig(max_size=20000).normalized().max_size == 10000

    config = ChunkConfig(max_size=50, overlap=40).normalized()
    assert config.max_size == 100
    assert config.overlap == 12


def test_config_json_keeps_wire_fields() -> None:
    config = ChunkConfig(strategy="code", max_size=800, overlap=40, separators=["\n"], preserve_context=True)
    restored = ChunkConfig.from_json(config.to_json())
    assert restored == config


def test_structure_chunker_emits_one_chunk_per_section() -> None:
    document = _markdown("# Title\n\npara1\n\n## Sub\n\npara2")
    chunks = StructureChunker().chunk(document, ChunkConfig(strategy="structure"))

    assert [chunk.content for chunk in chunks] == ["# Title\n\npara1", "## Sub\n\npara2"]
    assert [chunk.metadata["section_title"] for chunk in chunks] == ["Title", "Sub"]
    assert [chunk.metadata["section_level"] for chunk in chunks] == [1, 2]
    assert [chunk.metadata["chunk_index"] for chunk in chunks] == [0, 1]
    assert all(chunk.chunk_type == "structure" for chunk in chunks)
    assert all(chunk.metadata["strategy"] == "structure" for chunk in chunks)
    _assert_offsets(document, chunks)


def test_structure_chunker_keeps_preamble_before_first_heading() -> None:
    document = _markdown("Intro text before headings.\n\n# Alpha\n\nBody of alpha.")
    chunks = StructureChunker().chunk(document, ChunkConfig(strategy="structure"))

    assert chunks[0].content == "Intro text before headings."
    assert chunks[0].metadata["section_title"] == ""
    assert chunks[0].metadata["section_level"] == 0
    assert chunks[1].metadata["section_title"] == "Alpha"
    _assert_offsets(document, chunks)


def test_structure_chunker_ignores_titles_mentioned_in_body_text() -> None:
    document = _markdown(
        "# Overview\n\nThis guide covers Install and Usage.\n\n## Install\n\nRun pip.\n\n## Usage\n\nCall it."
    )
    chunks = StructureChunker().chunk(document, ChunkConfig(strategy="structure", max_size=1000))

    assert [(chunk.metadata["section_title"], chunk.content) for chunk in chunks] == [
        ("Overview", "# Overview\n\nThis guide covers Install and Usage."),
        ("Install", "## Install\n\nRun pip."),
        ("Usage", "## Usage\n\nCall it."),
    ]
    assert [chunk.metadata["section_level"] for chunk in chunks] == [1, 2, 2]
    _assert_offsets(document, chunks)


def test_structure_chunker_splits_long_sections() -> None:
    document = _markdown("# Big\n\n" + "word " * 100)
    chunks = StructureChunker().chunk(document, ChunkConfig(strategy="structure", max_size=200))

    assert len(chunks) > 1
    assert all(chunk.chunk_type == "structure_split" for chunk in chunks)
    assert all(len(chunk.content) <= 200 for chunk in chunks)
    assert [chunk.metadata["sub_index"] for chunk in chunks] == list(range(len(chunks)))
    assert {chunk.metadata["section_title"] for chunk in chunks} == {"Big"}
    _assert_offsets(document, chunks)


def test_structure_chunker_without_sections_uses_semantic_fallback() -> None:
    document = Document(title="plain", content="First paragraph.\n\nSecond paragraph.")
    chunks = StructureChunker().chunk(document, ChunkConfig(strategy="structure"))

    assert len(chunks) == 1
    assert chunks[0].chunk_type == "semantic"
    assert chunks[0].metadata["strategy"] == "structure"


def test_fixed_size_windows_overlap() -> None:
    content = "abcdefghij" * 30
    document = Document(title="letters", content=content)
    chunks = FixedSizeChunker().chunk(document, ChunkConfig(strategy="fixed_size", max_size=100, overlap=20))

    assert [(chunk.start_offset, chunk.end_offset) for chunk in chunks] == [
        (0, 100),
        (80, 180),
        (160, 260),
        (240, 300),
    ]
    assert all(chunk.chunk_type == "fixed_size" for chunk in chunks)
    _assert_offsets(document, chunks)


def test_fixed_size_snaps_to_sentence_ends() -> None:
    document = Document(title="sentences", content="Sentence one. Sentence two. Sentence three.")
    config = ChunkConfig(strategy="fixed_size", max_size=20, overlap=0, preserve_context=True)
    chunks = FixedSizeChunker().chunk(document, config)

    assert [chunk.content for chunk in chunks] == ["Sentence one.", "Sentence two.", "Sentence three."]
    _assert_offsets(document, chunks)


def test_fixed_size_counts_cjk_tokens() -> None:
    document = Document(title="zh", content="你好 world")
    chunks = FixedSizeChunker().chunk(document, ChunkConfig(max_size=100))

    assert chunks[0].token_count == 4


def test_fixed_size_whitespace_only_content_has_no_chunks() -> None:
    document = Document(title="blank", content="   \n\n  ")
    assert FixedSizeChunker().chunk(document, ChunkConfig()) == []


def test_semantic_chunker_groups_paragraphs_up_to_max_size() -> None:
    paragraphs = [f"paragraph {index} " + "lorem ipsum dolor " * 8 for index in range(3)]
    content = "\n\n".join(paragraph.strip() for paragraph in paragraphs)
    document = Document(title="prose", content=content)
    chunks = SemanticChunker().chunk(document, ChunkConfig(strategy="semantic", max_size=200))

    assert len(chunks) == 3
    assert all(chunk.chunk_type == "semantic" for chunk in chunks)
    _assert_offsets(document, chunks)

    merged = SemanticChunker().chunk(document, ChunkConfig(strategy="semantic", max_size=1000))
    assert len(merged) == 1
    assert merged[0].content == content


def test_semantic_chunker_breaks_oversized_paragraphs_on_lines() -> None:
    lines = [f"line {index:02d} " + "x" * 52 for index in range(5)]
    content = "\n".join(lines)
    document = Document(title="lines", content=content)
    chunks = SemanticChunker().chunk(document, ChunkConfig(strategy="semantic", max_size=150))

    assert len(chunks) == 3
    assert all(len(chunk.content) <= 150 for chunk in chunks)
    _assert_offsets(document, chunks)


def test_code_chunker_splits_on_definitions() -> None:
    source = (
        "import os\n"
        "\n"
        "def alpha():\n"
        "    return 1\n"
        "\n"
        "class Beta:\n"
        "    def method(self):\n"
        "        return 2\n"
    )
    document = Document(title="module", content=source)
    chunks = CodeChunker().chunk(document, ChunkConfig(strategy="code"))

    assert [chunk.metadata["block_name"] for chunk in chunks] == ["unknown", "alpha", "Beta", "method"]
    assert [chunk.metadata["block_type"] for chunk in chunks] == ["code", "function", "class", "function"]
    assert all(chunk.chunk_type == "code" for chunk in chunks)
    _assert_offsets(document, chunks)


def test_code_chunker_splits_oversized_blocks_on_lines() -> None:
    source = "def big():\n" + "    x = compute(1, 2)\n" * 20
    document = Document(title="big", content=source)
    chunks = CodeChunker().chunk(document, ChunkConfig(strategy="code", max_size=100))

    assert len(chunks) > 1
    assert all(chunk.chunk_type == "code_split" for chunk in chunks)
    assert all(len(chunk.content) <= 100 for chunk in chunks)
    assert {chunk.metadata["parent_block"] for chunk in chunks} == {"big"}
    assert [chunk.metadata["sub_index"] for chunk in chunks] == list(range(len(chunks)))


def test_code_chunker_falls_back_for_prose() -> None:
    document = Document(title="zh", content="这是一段普通文本。")
    chunks = CodeChunker().chunk(document, ChunkConfig(strategy="code"))

    assert len(chunks) == 1
    assert chunks[0].chunk_type == "semantic"
    assert chunks[0].metadata["strategy"] == "code"


def test_registry_resolves_and_freezes() -> None:
    registry = ChunkerRegistry(default_chunkers())

    assert isinstance(registry.resolve("semantic"), SemanticChunker)
    assert registry.frozen
    assert registry.strategies() == ["fixed_size", "semantic", "structure", "code"]
    with pytest.raises(RuntimeError):
        registry.register(FixedSizeChunker())
    with pytest.raises(UnknownStrategyError):
        registry.resolve("bogus")


def test_registry_without_chunker_for_strategy() -> None:
    registry = ChunkerRegistry([FixedSizeChunker()])
    with pytest.raises(UnknownStrategyError):
        registry.resolve("code")
