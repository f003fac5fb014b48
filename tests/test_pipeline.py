#!/usr/bin/env python3
"""
ABOUTME: Tests for building the correction list of a whole document
"""

import pytest

from _correction_review_helpers import TextBufferStore, make_paragraph
from correction_review.common import DiffFailure
from correction_review.pipeline import (
    build_corrections,
    build_corrections_for_store,
    document_offset_map,
    paragraphs_from_records,
)


RECORDS = [
    make_paragraph("Dutch (Moroccan)", "<{ch_head}> Dutch (Moroccan)", 1, "AAAA0001"),
    make_paragraph("recieved apples", "received apples", 2, "AAAA0002"),
    make_paragraph("The quick brown fox jumps over the lazy dog.",
                   "The quick brown fox jumped over the lazy dog.", 3, "AAAA0003"),
]


class BrokenEngine:
    """Diff engine that always reports an invariant violation"""

    def diff(self, a, b):
        raise DiffFailure("round trip broken")


class TestBuildCorrections:
    """Tests for build_corrections (record ids)"""

    def test_records_addressed_by_native_id(self):
        result = build_corrections(RECORDS)
        assert [c.paragraph_id for c in result.corrections] == ["AAAA0002", "AAAA0003"]
        assert result.unchanged == 1
        assert result.failures == []

    def test_diff_failure_is_collected(self):
        result = build_corrections(RECORDS, engine=BrokenEngine())
        assert result.corrections == []
        assert [f.paragraph_number for f in result.failures] == [2, 3]
        assert result.unchanged == 1


class TestBuildCorrectionsForStore:
    """Tests for build_corrections_for_store (live ids)"""

    def test_live_ids_and_methods(self):
        store = TextBufferStore(
            ["Dutch (Moroccan)", "recieved apples",
             "The quick brown fox jumps over the lazy dog", "Totally new"],
            paragraph_ids=["L1", "L2", "L3", "L4"],
        )
        result = build_corrections_for_store(RECORDS, store)
        assert {c.paragraph_id for c in result.corrections} == {"L2", "L3"}
        assert result.mapped == {'exact': 2, 'fuzzy': 1}
        assert [(f.paragraph_number, f.paragraph_id) for f in result.unmapped] == [(4, "L4")]
        assert result.unchanged == 1

    def test_source_numbers_follow_matched_record(self):
        store = TextBufferStore(["recieved apples", "Dutch (Moroccan)"])
        result = build_corrections_for_store(RECORDS, store)
        assert result.source_numbers == {"P1": 2, "P2": 1}
        correction = result.corrections[0]
        assert correction.paragraph_number == 1
        assert result.source_number(correction) == 2

    def test_positional_fallback(self):
        store = TextBufferStore(["Dutch (Moroccan)", "Something rewritten"])
        result = build_corrections_for_store(RECORDS, store)
        assert result.mapped == {'exact': 1, 'positional': 1}
        assert result.corrections[0].paragraph_id == "P2"
        assert result.corrections[0].original_text == "recieved apples"

    def test_partial_success_on_diff_failure(self, capsys):
        store = TextBufferStore(["recieved apples"])
        result = build_corrections_for_store(RECORDS, store, engine=BrokenEngine())
        assert result.corrections == []
        assert [f.paragraph_id for f in result.failures] == ["P1"]
        assert "round trip broken" in capsys.readouterr().out

    def test_threshold_passed_through(self):
        store = TextBufferStore(["x", "y", "z", "The quick brown cat naps under the lazy dog"])
        strict = build_corrections_for_store(RECORDS, store)
        assert len(strict.unmapped) == 1
        loose = build_corrections_for_store(RECORDS, store, threshold=0.5)
        assert loose.unmapped == []
        assert loose.mapped.get('fuzzy') == 1


class TestDocumentOffsetMap:
    """Tests for document_offset_map"""

    def test_cumulative_offsets(self):
        assert document_offset_map(RECORDS) == {1: (0, 16), 2: (16, 31), 3: (31, 75)}

    def test_empty(self):
        assert document_offset_map([]) == {}


class TestParagraphsFromRecords:
    """Tests for paragraphs_from_records"""

    def test_valid_records(self):
        paragraphs = paragraphs_from_records([{
            'paragraph_number': 1,
            'word_native_para_id': '0A0B0C0D',
            'original_text_no_markers': 'Text',
            'input_with_markers': '<{p}>Text',
            'latest_edited_text': 'Text!',
        }])
        assert paragraphs[0].native_paragraph_id == '0A0B0C0D'
        assert paragraphs[0].edited_text == 'Text!'
        assert paragraphs[0].marked_text == '<{p}>Text'

    def test_missing_field(self):
        with pytest.raises(ValueError, match="Paragraph 4: missing field 'latest_edited_text'"):
            paragraphs_from_records([{
                'paragraph_number': 4,
                'word_native_para_id': 'X',
                'original_text_no_markers': 'Text',
            }])

    def test_wrong_types(self):
        with pytest.raises(ValueError, match="must be a string"):
            paragraphs_from_records([{
                'paragraph_number': 1,
                'word_native_para_id': 'X',
                'original_text_no_markers': None,
                'latest_edited_text': 'Text',
            }])
        with pytest.raises(ValueError, match="not an object"):
            paragraphs_from_records(["text"])
