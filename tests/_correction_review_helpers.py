#!/usr/bin/env python3
"""
ABOUTME: Shared helpers for correction review tests.
"""

import sys
import json
from pathlib import Path

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn

# Add skills/correction-review/scripts directory to path (must be before import)
_scripts_dir = Path(__file__).parent.parent / 'skills' / 'correction-review' / 'scripts'
sys.path.insert(0, str(_scripts_dir))

from correction_review.common import (  # noqa: E402
    Correction,
    Paragraph,
    RangeHandle,
    StoreError,
)
from correction_review.docx_store import DocxDocumentStore  # noqa: E402
from correction_review.store import TextBufferStore  # noqa: E402
from correction_review.synthesizer import build_paragraph_corrections  # noqa: E402


# ============================================================
# Record Builders
# ============================================================

def make_paragraph(original: str, edited: str, number: int = 1,
                   para_id: str = "P1") -> Paragraph:
    """Create a Paragraph record with sensible defaults"""
    return Paragraph(
        paragraph_number=number,
        native_paragraph_id=para_id,
        original_text=original,
        edited_text=edited,
    )


def corrections_for(original: str, edited: str, para_id: str = "P1", number: int = 1):
    """Corrections for one paragraph addressed to para_id"""
    return build_paragraph_corrections(make_paragraph(original, edited, number, para_id))


def make_document_json(path: Path, pairs, title: str = "Test document") -> Path:
    """
    Write an edited-document JSON file.

    Args:
        path: Target file
        pairs: List of (original_text, edited_text)
    """
    data = {
        'document_title': title,
        'document_id': 'doc-1',
        'paragraphs': [
            {
                'paragraph_number': i + 1,
                'word_native_para_id': f"{i + 1:08X}",
                'original_text_no_markers': original,
                'input_with_markers': original,
                'latest_edited_text': edited,
            }
            for i, (original, edited) in enumerate(pairs)
        ],
    }
    path.write_text(json.dumps(data, ensure_ascii=False), encoding='utf-8')
    return path


# ============================================================
# Stores
# ============================================================

def make_docx(texts, runs_per_paragraph=None):
    """
    Create an in-memory python-docx Document.

    Args:
        texts: Paragraph texts
        runs_per_paragraph: Optional {index: [run texts]} to split a
            paragraph over several runs (bold on odd runs)
    """
    doc = Document()
    runs_per_paragraph = runs_per_paragraph or {}
    for i, text in enumerate(texts):
        if i in runs_per_paragraph:
            para = doc.add_paragraph()
            for j, run_text in enumerate(runs_per_paragraph[i]):
                run = para.add_run(run_text)
                run.bold = bool(j % 2)
        else:
            doc.add_paragraph(text)
    return doc


def add_drawing_run(doc, index: int = 0):
    """Append a text-less run holding an inline drawing to a paragraph"""
    run = OxmlElement('w:r')
    run.append(OxmlElement('w:drawing'))
    doc.paragraphs[index]._p.append(run)
    return run


def drawing_count(store: DocxDocumentStore) -> int:
    return len(list(store.body_elem.iter(qn('w:drawing'))))


def make_docx_store(texts, runs_per_paragraph=None) -> DocxDocumentStore:
    return DocxDocumentStore(make_docx(texts, runs_per_paragraph))


def highlights(store: DocxDocumentStore, paragraph_id: str):
    """(run text, highlight value) for every live run of a paragraph"""
    para = store._para(paragraph_id)
    return [
        (info['text'], store._highlight_of(info['elem']))
        for info in store._collect_runs(para)
        if info['text']
    ]


class FailingStore(TextBufferStore):
    """TextBufferStore whose writes can be broken on demand"""

    def __init__(self, paragraphs, fail_on=(), corrupt=False):
        super().__init__(paragraphs)
        self.fail_on = set(fail_on)
        self.corrupt = corrupt

    def _do_insert(self, handle: RangeHandle, text: str) -> None:
        if 'insert' in self.fail_on:
            raise StoreError("insert rejected")
        super()._do_insert(handle, text + ('#' if self.corrupt else ''))

    def _do_delete(self, handle: RangeHandle) -> None:
        if 'delete' in self.fail_on:
            raise StoreError("delete rejected")
        super()._do_delete(handle)

    def _do_replace_content(self, paragraph_id: str, text: str) -> None:
        if 'replace_content' in self.fail_on:
            raise StoreError("replace rejected")
        super()._do_replace_content(paragraph_id, text)

    def _do_annotate(self, handle: RangeHandle, tag: str, color: str) -> None:
        if 'annotate' in self.fail_on:
            raise StoreError("annotation rejected")
        super()._do_annotate(handle, tag, color)
