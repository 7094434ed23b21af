"""Tests for NER with pattern fallbacks."""
from unittest.mock import Mock

import pytest

from services.entity_extractor import (
    EntityExtractor,
    clean_text,
    extract_with_patterns,
    failure_risk,
    merge_entities,
    split_text,
)

SAMPLE = (
    "Invoice INV-2024-001 from Acme Solutions for John Smith. "
    "Contact billing@acme.com or call (555) 123-4567. Total due $1,250.00 by 03/15/2024."
)


def _labels(entities):
    return {e.label for e in entities}


class TestHeuristics:

    def test_clean_text_strips_control_characters_and_runs(self):
        assert clean_text("a\x00b\x07c   d") == "abc d"
        assert clean_text("wait.......") == "wait..."
        assert clean_text("zzzzzzzzzz") == "zzz"

    def test_clean_text_empty(self):
        assert clean_text("") == ""

    def test_clean_text_is_capped(self):
        assert len(clean_text("word " * 2000)) <= 4000

    def test_plain_prose_has_low_risk(self):
        assert failure_risk("The quick brown fox jumps over the lazy dog.") == 0

    def test_noisy_text_has_high_risk(self):
        noisy = "\x00\x01\x02" * 20 + "1234567890" * 10 + "éàü" * 20
        assert failure_risk(noisy) >= 7

    def test_risk_is_bounded(self):
        assert 0 <= failure_risk("\x00" * 100 + "a" * 50 + "9" * 50) <= 10

    def test_split_text_respects_word_boundaries(self):
        chunks = split_text("alpha beta gamma delta", 11)
        assert [c for _, c in chunks] == ["alpha beta", "gamma delta"]
        assert chunks[1][0] == 11


class TestPatterns:

    def test_pattern_extraction_finds_common_entities(self):
        labels = _labels(extract_with_patterns(SAMPLE))
        assert {"EMAIL", "PHONE", "MONEY", "DATE", "PERSON"} <= labels

    def test_pattern_results_sorted_by_score(self):
        scores = [e.score for e in extract_with_patterns(SAMPLE)]
        assert scores == sorted(scores, reverse=True)

    def test_merge_prefers_model_and_dedupes_case_insensitively(self):
        model = extract_with_patterns("John Smith")
        for entity in model:
            entity.source = "model"
        merged = merge_entities(model, extract_with_patterns("JOHN SMITH john smith John Smith"))
        assert [e.text.lower() for e in merged].count("john smith") == 1
        assert merged[0].source == "model"


class TestEntityExtractor:

    @pytest.mark.asyncio
    async def test_without_pipeline_uses_patterns(self):
        entities = await EntityExtractor(ner_pipeline=None).extract(SAMPLE)
        assert entities
        assert all(e.source == "pattern" for e in entities)

    @pytest.mark.asyncio
    async def test_model_results_are_normalised(self):
        pipeline = Mock(return_value=[
            {"entity_group": "PER", "word": "John Smith", "score": 0.98, "start": 0, "end": 10},
            {"entity_group": "ORG", "word": "Acme", "score": 0.91, "start": 20, "end": 24},
            {"entity_group": "ORG", "word": "x", "score": 0.99, "start": 30, "end": 31},
            {"entity_group": "MISC", "word": "Noise", "score": 0.05, "start": 40, "end": 45},
            {"entity_group": "PER", "word": "Jane Doe", "score": 0.9, "start": 50, "end": 58},
            {"entity_group": "LOC", "word": "Boston", "score": 0.88, "start": 60, "end": 66},
            {"entity_group": "LOC", "word": "Denver", "score": 0.87, "start": 70, "end": 76},
        ])

        entities = await EntityExtractor(ner_pipeline=pipeline).extract("John Smith works at Acme in Boston.")

        assert [e.text for e in entities] == ["John Smith", "Acme", "Jane Doe", "Boston", "Denver"]
        assert all(e.source == "model" for e in entities)
        pipeline.assert_called_once()

    @pytest.mark.asyncio
    async def test_high_risk_text_skips_model(self):
        pipeline = Mock()
        noisy = "\x00\x01\x02" * 20 + "1234567890" * 10 + "éàü" * 20 + " John Smith"

        entities = await EntityExtractor(ner_pipeline=pipeline).extract(noisy)

        pipeline.assert_not_called()
        assert all(e.source == "pattern" for e in entities)

    @pytest.mark.asyncio
    async def test_short_text_skips_model(self):
        pipeline = Mock()
        await EntityExtractor(ner_pipeline=pipeline).extract("hi")
        pipeline.assert_not_called()

    @pytest.mark.asyncio
    async def test_pipeline_error_falls_back_to_patterns(self):
        pipeline = Mock(side_effect=RuntimeError("index out of range in self"))

        entities = await EntityExtractor(ner_pipeline=pipeline).extract(SAMPLE)

        assert entities
        assert all(e.source == "pattern" for e in entities)

    @pytest.mark.asyncio
    async def test_partial_failures_are_supplemented(self):
        calls = {"n": 0}

        def flaky(chunk):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("tensor size mismatch")
            return [{"entity_group": "PER", "word": "Mary Major", "score": 0.95, "start": 0, "end": 10}]

        text = " ".join([SAMPLE] * 6)
        extractor = EntityExtractor(ner_pipeline=flaky, max_text_length=300)

        entities = await extractor.extract(text)

        sources = {e.source for e in entities}
        assert sources == {"model", "pattern"}
        assert "EMAIL" in _labels(entities)
