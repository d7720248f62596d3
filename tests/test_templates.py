from __future__ import annotations

from knowledge_ingest.ingest.chunking import (
    ChunkConfig,
    RecommendationRequest,
    default_templates,
    recommend_chunk_config,
    validate_chunk_config,
)


def test_default_templates_cover_every_strategy() -> None:
    templates = default_templates()

    assert set(templates) == {"fixed_size", "semantic", "structure", "code"}
    assert templates["fixed_size"].max_size == 1500
    assert templates["fixed_size"].overlap == 150
    assert templates["structure"].separators == []
    assert templates["code"].to_dict()["strategy"] == "code"


def test_validate_accepts_reasonable_config() -> None:
    result = validate_chunk_config(ChunkConfig(strategy="semantic", max_size=1500, overlap=100))

    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_validate_reports_errors() -> None:
    result = validate_chunk_config(ChunkConfig(strategy="paragraphs", max_size=50, overlap=-1))

    assert not result.is_valid
    assert len(result.errors) == 3


def test_validate_rejects_overlap_not_smaller_than_max_size() -> None:
    result = validate_chunk_config(ChunkConfig(strategy="fixed_size", max_size=500, overlap=500))

    assert not result.is_valid
    assert result.errors == ["overlap must be smaller than max_size"]


def test_validate_warnings_and_suggestions() -> None:
    large = validate_chunk_config(ChunkConfig(strategy="fixed_size", max_size=12000, overlap=7000))
    assert large.is_valid
    assert len(large.warnings) == 2
    assert large.suggestions

    structure = validate_chunk_config(ChunkConfig(strategy="structure", max_size=3000, overlap=10))
    assert structure.is_valid
    assert len(structure.suggestions) == 1


def test_recommend_structure_for_structured_markdown() -> None:
    recommendation = recommend_chunk_config(
        RecommendationRequest(document_type="markdown", document_length=20000, has_structure=True)
    )

    assert recommendation.recommended_config.strategy == "structure"
    assert recommendation.recommended_config.max_size == 2500
    assert recommendation.confidence == 1.0
    assert [template.strategy for template in recommendation.alternatives] == ["fixed_size", "semantic", "code"]


def test_recommend_shrinks_chunks_for_short_documents() -> None:
    recommendation = recommend_chunk_config(RecommendationRequest(document_type="pdf", document_length=3000))

    assert recommendation.recommended_config.strategy == "semantic"
    assert recommendation.recommended_config.max_size == 1700
    assert recommendation.recommended_config.overlap == 150
    assert "short document" in recommendation.reason


def test_recommend_grows_chunks_for_long_generic_documents() -> None:
    recommendation = recommend_chunk_config(RecommendationRequest(document_length=60000))

    assert recommendation.recommended_config.strategy == "fixed_size"
    assert recommendation.recommended_config.max_size == 2000
    assert recommendation.confidence == 0.8
    assert recommendation.to_dict()["recommended_config"]["use_case"] == recommendation.reason
