#!/usr/bin/env python3
"""
ABOUTME: Tests for DocxDocumentStore (python-docx / lxml binding)
"""

import pytest
from docx import Document
from docx.enum.text import WD_COLOR_INDEX
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

from _correction_review_helpers import (
    RangeHandle,
    StoreError,
    add_drawing_run,
    drawing_count,
    highlights,
    make_docx,
    make_docx_store,
)
from correction_review.common import ParagraphNotFoundError
from correction_review.docx_store import (
    PARA_ID_ATTR,
    DocxDocumentStore,
    bookmark_name_for,
    sanitize_xml_string,
)

PID = "WORD_PARA_1"


def run_formats(store, index=0):
    return [(r.text, bool(r.bold)) for r in store.document.paragraphs[index].runs]


class TestParagraphText:
    """Tests for paragraph enumeration and text extraction"""

    def test_text_across_runs(self):
        store = make_docx_store([None], {0: ["E. ", "Coli", ", a common bacteria"]})
        assert store.read_text(PID) == "E. Coli, a common bacteria"

    def test_positional_ids(self):
        store = make_docx_store(["One", "Two"])
        assert [(p.paragraph_id, p.paragraph_number, p.text) for p in store.list_paragraphs()] == [
            ("WORD_PARA_1", 1, "One"), ("WORD_PARA_2", 2, "Two"),
        ]

    def test_native_para_id_preferred(self):
        doc = make_docx(["One", "Two"])
        doc.paragraphs[1]._p.set(PARA_ID_ATTR, "1A2B3C4D")
        store = DocxDocumentStore(doc)
        assert [p.paragraph_id for p in store.list_paragraphs()] == ["WORD_PARA_1", "1A2B3C4D"]

    def test_duplicate_para_id_gets_positional_id(self):
        doc = make_docx(["One", "Two"])
        for para in doc.paragraphs:
            para._p.set(PARA_ID_ATTR, "1A2B3C4D")
        store = DocxDocumentStore(doc)
        assert [p.paragraph_id for p in store.list_paragraphs()] == ["1A2B3C4D", "WORD_PARA_2"]

    def test_tabs_and_breaks(self):
        doc = Document()
        para = doc.add_paragraph("a")
        run = para.add_run("b")
        run.add_tab()
        run.add_text("c")
        run.add_break()
        store = DocxDocumentStore(doc)
        assert store.read_text(PID) == "ab\tc\n"

    def test_deleted_runs_excluded(self):
        doc = make_docx(["keep"])
        deleted = OxmlElement('w:del')
        run = OxmlElement('w:r')
        text = OxmlElement('w:t')
        text.text = "gone"
        run.append(text)
        deleted.append(run)
        doc.paragraphs[0]._p.append(deleted)
        assert DocxDocumentStore(doc).read_text(PID) == "keep"

    def test_table_paragraphs_included(self):
        doc = make_docx(["Before"])
        table = doc.add_table(rows=1, cols=2)
        table.cell(0, 0).text = "A"
        table.cell(0, 1).text = "B"
        doc.add_paragraph("After")
        store = DocxDocumentStore(doc)
        assert [p.text for p in store.list_paragraphs()] == ["Before", "A", "B", "After"]

    def test_unknown_paragraph(self):
        store = make_docx_store(["One"])
        with pytest.raises(ParagraphNotFoundError):
            store.read_text("NOPE")


class TestMutations:
    """Run-level edits keep formatting outside the edited span"""

    def test_insert_inside_run_inherits_formatting(self):
        store = make_docx_store([None], {0: ["plain ", "bold text"]})
        store.insert_text(RangeHandle(PID, 10, 10), "ER")
        assert store.read_text(PID) == "plain bold text"
        store.sync()
        assert store.read_text(PID) == "plain boldER text"
        assert run_formats(store) == [
            ("plain ", False), ("bold", True), ("ER", True), (" text", True),
        ]

    def test_insert_at_start_uses_following_run(self):
        store = make_docx_store([None], {0: ["x", "y"]})
        store.insert_text(RangeHandle(PID, 0, 0), "w")
        store.sync()
        assert store.read_text(PID) == "wxy"
        assert run_formats(store)[0] == ("w", False)

    def test_insert_into_empty_paragraph(self):
        store = make_docx_store([""])
        store.insert_text(RangeHandle(PID, 0, 0), "new\ttext")
        store.sync()
        assert store.read_text(PID) == "new\ttext"

    def test_delete_across_runs(self):
        store = make_docx_store([None], {0: ["E. ", "Coli", ", a common bacteria"]})
        store.delete_range(RangeHandle(PID, 2, 8))
        store.sync()
        assert store.read_text(PID) == "E. a common bacteria"

    def test_replace_takes_first_run_formatting(self):
        store = make_docx_store([None], {0: ["E. ", "Coli", ", a common bacteria"]})
        store.replace_range(RangeHandle(PID, 3, 4), "c")
        store.sync()
        assert store.read_text(PID) == "E. coli, a common bacteria"
        assert run_formats(store) == [
            ("E. ", False), ("c", True), ("oli", True), (", a common bacteria", False),
        ]

    def test_replace_content(self):
        store = make_docx_store([None], {0: ["a", "b", "c"]})
        store.replace_content(PID, "xyz")
        store.sync()
        assert store.read_text(PID) == "xyz"
        assert run_formats(store) == [("xyz", False)]

    def test_replace_content_keeps_drawing_runs(self):
        doc = make_docx(["ab  ab"])
        add_drawing_run(doc)
        store = DocxDocumentStore(doc)
        store.replace_content(PID, "ab ac")
        store.sync()
        assert store.read_text(PID) == "ab ac"
        assert drawing_count(store) == 1

    def test_delete_keeps_drawing_sharing_a_run(self):
        doc = make_docx(["abc"])
        doc.paragraphs[0].runs[0]._r.append(OxmlElement('w:drawing'))
        store = DocxDocumentStore(doc)
        store.delete_range(RangeHandle(PID, 0, 3))
        store.sync()
        assert store.read_text(PID) == ""
        assert drawing_count(store) == 1

    def test_clear(self):
        store = make_docx_store(["text"])
        store.clear(PID)
        store.sync()
        assert store.read_text(PID) == ""

    def test_out_of_range_handle(self):
        store = make_docx_store(["cat"])
        store.delete_range(RangeHandle(PID, 1, 9))
        with pytest.raises(StoreError):
            store.sync()
        assert store.read_text(PID) == "cat"

    def test_illegal_xml_characters_dropped(self):
        store = make_docx_store(["ab"])
        store.insert_text(RangeHandle(PID, 1, 1), "\x01-\x0b")
        store.sync()
        assert store.read_text(PID) == "a-b"

    def test_snapshot_restores_runs(self):
        store = make_docx_store([None], {0: ["E. ", "Coli", ", a common bacteria"]})
        before = run_formats(store)
        snapshot = store.snapshot(PID)
        store.replace_content(PID, "something else")
        store.sync()
        store.restore(PID, snapshot)
        store.sync()
        assert store.read_text(PID) == "E. Coli, a common bacteria"
        assert run_formats(store) == before

    def test_save_round_trip(self, tmp_path):
        store = make_docx_store(["cat sat"])
        store.insert_text(RangeHandle(PID, 7, 7), "!")
        path = store.save(tmp_path / "out.docx")
        assert Document(str(path)).paragraphs[0].text == "cat sat!"


class TestAnnotations:
    """Preview highlights wrapped in hidden bookmarks"""

    def test_annotate_and_remove(self):
        store = make_docx_store(["The cat sat"])
        store.annotate(RangeHandle(PID, 4, 7), "correction_x", "cyan")
        store.sync()
        assert highlights(store, PID) == [("The ", None), ("cat", "cyan"), (" sat", None)]
        assert store.read_text(PID) == "The cat sat"

        store.remove_annotation("correction_x")
        store.sync()
        assert all(color is None for _, color in highlights(store, PID))
        assert not list(store.body_elem.iter(qn('w:bookmarkStart')))
        assert not list(store.body_elem.iter(qn('w:bookmarkEnd')))

    def test_author_highlight_untouched(self):
        doc = make_docx([None], {0: ["marked", " plain"]})
        doc.paragraphs[0].runs[0].font.highlight_color = WD_COLOR_INDEX.YELLOW
        store = DocxDocumentStore(doc)
        store.annotate(RangeHandle(PID, 0, 12), "correction_x", "green")
        store.sync()
        assert highlights(store, PID) == [("marked", "yellow"), (" plain", "green")]
        store.remove_annotation("correction_x")
        store.sync()
        assert highlights(store, PID) == [("marked", "yellow"), (" plain", None)]

    def test_edited_annotation_fully_removed(self):
        """Text written into or next to a marked span does not keep the preview colour"""
        store = make_docx_store(["The cat sat"])
        store.annotate(RangeHandle(PID, 4, 7), "correction_x", "cyan")
        store.sync()
        store.replace_range(RangeHandle(PID, 4, 7), "dog")
        store.insert_text(RangeHandle(PID, 7, 7), "s")
        store.sync()
        assert store.read_text(PID) == "The dogs sat"
        store.remove_annotation("correction_x")
        store.sync()
        assert all(color is None for _, color in highlights(store, PID))

    def test_author_highlight_of_same_colour_kept(self):
        doc = make_docx([None], {0: ["ab", "  ab"]})
        doc.paragraphs[0].runs[0].font.highlight_color = WD_COLOR_INDEX.YELLOW
        store = DocxDocumentStore(doc)
        store.annotate(RangeHandle(PID, 0, 6), "correction_x", "yellow")
        store.sync()
        assert highlights(store, PID) == [("ab", "yellow"), ("  ab", "yellow")]
        store.remove_annotation("correction_x")
        store.sync()
        assert highlights(store, PID) == [("ab", "yellow"), ("  ab", None)]

    def test_annotation_removed_after_snapshot_restore(self):
        store = make_docx_store(["The cat sat"])
        store.annotate(RangeHandle(PID, 4, 7), "correction_x", "cyan")
        store.sync()
        snapshot = store.snapshot(PID)
        store.replace_content(PID, "changed")
        store.sync()
        store.restore(PID, snapshot)
        store.sync()
        assert highlights(store, PID) == [("The ", None), ("cat", "cyan"), (" sat", None)]
        store.remove_annotation("correction_x")
        store.sync()
        assert all(color is None for _, color in highlights(store, PID))

    def test_empty_range_rejected(self):
        store = make_docx_store([""])
        store.annotate(RangeHandle(PID, 0, 0), "correction_x", "cyan")
        with pytest.raises(StoreError):
            store.sync()

    def test_remove_unknown_tag_is_noop(self):
        store = make_docx_store(["text"])
        store.remove_annotation("correction_missing")
        store.sync()
        assert store.read_text(PID) == "text"


class TestHelpers:
    """Tests for module helpers"""

    def test_bookmark_name(self):
        assert bookmark_name_for("correction_1A2B-0") == "_correction_1A2B_0"
        assert len(bookmark_name_for("correction_" + "x" * 60)) == 40

    def test_sanitize(self):
        assert sanitize_xml_string("a\tb\nc\x00\x1f") == "a\tb\nc"
        assert sanitize_xml_string("") == ""
