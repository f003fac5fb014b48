"""
Live document store over a python-docx Document.

Paragraph text is built from the paragraph's own runs (w:t, w:tab -> "\\t",
w:br/w:cr -> "\\n"); runs inside w:del are not part of the live text.
Edits split runs at range boundaries and write new runs that inherit the
neighbouring run's w:rPr, so formatting outside the edited span is kept.

Runs that carry more than text (drawings, field characters, footnote
references) are never removed by an edit: only their text children go.

Preview annotations are a hidden bookmark pair named after the tag plus a
w:highlight on the runs between them. The store remembers every w:highlight
element it added (copies made by run splits and snapshots included), so
removal clears those and nothing the author highlighted.
"""

import copy
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from docx import Document
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from lxml import etree

from .common import (
    NS,
    LiveParagraph,
    ParagraphNotFoundError,
    RangeHandle,
    StoreError,
)
from .store import LiveDocumentStore


XML_SPACE = '{http://www.w3.org/XML/1998/namespace}space'
PARA_ID_ATTR = f'{{{NS["w14"]}}}paraId'

W_P = qn('w:p')
W_R = qn('w:r')
W_T = qn('w:t')
W_TAB = qn('w:tab')
W_BR = qn('w:br')
W_CR = qn('w:cr')
W_DEL = qn('w:del')
W_RPR = qn('w:rPr')
W_ID = qn('w:id')
W_NAME = qn('w:name')
W_VAL = qn('w:val')
W_HIGHLIGHT = qn('w:highlight')
W_BOOKMARK_START = qn('w:bookmarkStart')
W_BOOKMARK_END = qn('w:bookmarkEnd')

TEXT_TAGS = (W_T, W_TAB, W_BR, W_CR)

# Bookmark names: max 40 chars, leading "_" hides them in Word's UI
_BOOKMARK_UNSAFE = re.compile(r'[^A-Za-z0-9_]')

# XML 1.0 forbids these control characters; lxml refuses to store them
_ILLEGAL_XML_CHARS = {c: None for c in range(0x20) if c not in (0x09, 0x0A, 0x0D)}


def sanitize_xml_string(text: str) -> str:
    """Drop control characters that are illegal in XML 1.0 (tab, LF, CR stay)"""
    if not text:
        return text
    return text.translate(_ILLEGAL_XML_CHARS)


def bookmark_name_for(tag: str) -> str:
    return ('_' + _BOOKMARK_UNSAFE.sub('_', tag))[:40]


class DocxDocumentStore(LiveDocumentStore):
    """LiveDocumentStore over every w:p in a .docx body, tables included"""

    def __init__(self, document, verbose: bool = False):
        super().__init__()
        self.document = document
        self.verbose = verbose
        self.body_elem = document.element.body

        self._paragraphs: List[Tuple[str, etree._Element]] = []
        self._by_id: Dict[str, etree._Element] = {}
        self._init_paragraphs()

        # tag -> bookmark id
        self._annotations: Dict[str, str] = {}
        # w:highlight element -> tag of the annotation that added it
        self._marked: Dict[etree._Element, str] = {}
        self._next_bookmark_id = self._init_bookmark_id()

    @classmethod
    def open(cls, path, verbose: bool = False) -> 'DocxDocumentStore':
        return cls(Document(str(path)), verbose=verbose)

    def save(self, path) -> Path:
        if self.has_pending:
            self.sync()
        path = Path(path)
        self.document.save(str(path))
        return path

    # ---- XML helpers -------------------------------------------------

    def _xpath(self, elem, expr: str):
        """
        Execute XPath with namespace handling for both python-docx elements
        (prefixes pre-registered) and plain lxml elements.
        """
        try:
            return elem.xpath(expr)
        except etree.XPathEvalError:
            return elem.xpath(expr, namespaces=NS)

    def _init_paragraphs(self):
        """Assign a stable id to every paragraph in document order"""
        for index, para in enumerate(self._xpath(self.body_elem, './/w:p')):
            para_id = para.get(PARA_ID_ATTR)
            # Word duplicates paraId across vertically merged cells
            if not para_id or para_id in self._by_id:
                para_id = f"WORD_PARA_{index + 1}"
            self._paragraphs.append((para_id, para))
            self._by_id[para_id] = para

    def _init_bookmark_id(self) -> int:
        max_id = -1
        for elem in self.body_elem.iter(W_BOOKMARK_START):
            try:
                max_id = max(max_id, int(elem.get(W_ID, '')))
            except ValueError:
                pass
        return max_id + 1

    def _para(self, paragraph_id: str):
        para = self._by_id.get(paragraph_id)
        if para is None:
            raise ParagraphNotFoundError(f"Paragraph ID {paragraph_id} not found")
        return para

    def _owning_paragraph(self, elem):
        node = elem.getparent()
        while node is not None and node.tag != W_P:
            node = node.getparent()
        return node

    def _is_deleted(self, run, para_elem) -> bool:
        node = run.getparent()
        while node is not None and node is not para_elem:
            if node.tag == W_DEL:
                return True
            node = node.getparent()
        return False

    def _run_text(self, run) -> str:
        parts = []
        for child in run:
            if child.tag == W_T:
                parts.append(child.text or '')
            elif child.tag == W_TAB:
                parts.append('\t')
            elif child.tag in (W_BR, W_CR):
                parts.append('\n')
        return ''.join(parts)

    def _collect_runs(self, para_elem) -> List[Dict]:
        """
        Collect the paragraph's live runs with their text positions.

        Returns:
            List of {'elem', 'text', 'start', 'end'} in document order
        """
        runs = []
        pos = 0
        for run in para_elem.iter(W_R):
            if self._owning_paragraph(run) is not para_elem:
                continue  # Run of a nested (text box) paragraph
            if self._is_deleted(run, para_elem):
                continue
            text = self._run_text(run)
            runs.append({'elem': run, 'text': text, 'start': pos, 'end': pos + len(text)})
            pos += len(text)
        return runs

    def _copy_tree(self, elem):
        """Deep copy that carries annotation highlight marks over to the copy"""
        clone = copy.deepcopy(elem)
        if self._marked:
            for src, dst in zip(elem.iter(), clone.iter()):
                tag = self._marked.get(src)
                if tag is not None:
                    self._marked[dst] = tag
        return clone

    def _remove_run_text(self, run) -> None:
        """Drop a run's text; the run itself goes only if nothing but rPr is left"""
        for child in list(run):
            if child.tag in TEXT_TAGS:
                run.remove(child)
        if all(child.tag == W_RPR for child in run):
            run.getparent().remove(run)

    def _set_run_text(self, run, text: str) -> None:
        """Replace the text content of a run, keeping rPr and other children"""
        for child in list(run):
            if child.tag in TEXT_TAGS:
                run.remove(child)
        for piece in re.split(r'(\t|\n)', sanitize_xml_string(text)):
            if not piece:
                continue
            if piece == '\t':
                run.append(OxmlElement('w:tab'))
            elif piece == '\n':
                run.append(OxmlElement('w:br'))
            else:
                t_elem = OxmlElement('w:t')
                # Preserve leading/trailing spaces in written text
                t_elem.set(XML_SPACE, 'preserve')
                t_elem.text = piece
                run.append(t_elem)

    def _new_run(self, text: str, template=None):
        """Create a w:r carrying the template run's formatting"""
        run = OxmlElement('w:r')
        if template is not None:
            rPr = template.find(W_RPR)
            if rPr is not None:
                highlight = rPr.find(W_HIGHLIGHT)
                rPr = copy.deepcopy(rPr)
                if highlight is not None and highlight in self._marked:
                    # Preview highlight belongs to the annotation, not to the text
                    self._set_highlight_on_rPr(rPr, None)
                run.append(rPr)
        self._set_run_text(run, text)
        return run

    def _split_at(self, para_elem, offset: int) -> None:
        """Make sure a run boundary exists at offset"""
        for info in self._collect_runs(para_elem):
            if info['start'] < offset < info['end']:
                run = info['elem']
                cut = offset - info['start']
                right = self._copy_tree(run)
                for child in list(right):
                    if child.tag != W_RPR:
                        right.remove(child)
                self._set_run_text(run, info['text'][:cut])
                self._set_run_text(right, info['text'][cut:])
                run.addnext(right)
                return

    def _runs_in_range(self, para_elem, start: int, end: int) -> List[Dict]:
        self._split_at(para_elem, start)
        self._split_at(para_elem, end)
        return [
            info for info in self._collect_runs(para_elem)
            if info['start'] >= start and info['end'] <= end and info['end'] > info['start']
        ]

    # ---- reads -------------------------------------------------------

    def list_paragraphs(self) -> List[LiveParagraph]:
        return [
            LiveParagraph(para_id, index + 1, self._para_text(para))
            for index, (para_id, para) in enumerate(self._paragraphs)
        ]

    def _para_text(self, para_elem) -> str:
        return ''.join(info['text'] for info in self._collect_runs(para_elem))

    def read_text(self, paragraph_id: str) -> str:
        return self._para_text(self._para(paragraph_id))

    def snapshot(self, paragraph_id: str):
        """Deep copy of the paragraph's children, restorable with restore()"""
        para = self._para(paragraph_id)
        return [self._copy_tree(child) for child in para]

    # ---- primitives --------------------------------------------------

    def _do_insert(self, handle: RangeHandle, text: str) -> None:
        self._check_handle(handle)
        if not text:
            return
        para = self._para(handle.paragraph_id)
        self._split_at(para, handle.start)
        runs = [r for r in self._collect_runs(para) if r['end'] > r['start']]
        left = [r for r in runs if r['end'] == handle.start]
        right = [r for r in runs if r['start'] == handle.start]
        if left:
            anchor = left[-1]['elem']
            anchor.addnext(self._new_run(text, anchor))
        elif right:
            anchor = right[0]['elem']
            anchor.addprevious(self._new_run(text, anchor))
        else:
            para.append(self._new_run(text))

    def _do_delete(self, handle: RangeHandle) -> None:
        self._check_handle(handle)
        if handle.is_insertion_point:
            return
        para = self._para(handle.paragraph_id)
        for info in self._runs_in_range(para, handle.start, handle.end):
            self._remove_run_text(info['elem'])

    def _do_replace(self, handle: RangeHandle, text: str) -> None:
        self._check_handle(handle)
        para = self._para(handle.paragraph_id)
        affected = self._runs_in_range(para, handle.start, handle.end)
        if not affected or not text:
            super()._do_replace(handle, text)
            return
        # New text takes the formatting of the first replaced run
        first = affected[0]['elem']
        first.addprevious(self._new_run(text, first))
        for info in affected:
            self._remove_run_text(info['elem'])

    def _do_replace_content(self, paragraph_id: str, text: str) -> None:
        para = self._para(paragraph_id)
        runs = [r for r in self._collect_runs(para) if r['end'] > r['start']]
        new_run = self._new_run(text, runs[0]['elem'] if runs else None) if text else None

        if runs:
            # New text takes the place of the first text run
            if new_run is not None:
                runs[0]['elem'].addprevious(new_run)
            for info in runs:
                self._remove_run_text(info['elem'])
        elif new_run is not None:
            para.append(new_run)

    def _do_restore(self, paragraph_id: str, snapshot) -> None:
        para = self._para(paragraph_id)
        if isinstance(snapshot, str):
            self._do_replace_content(paragraph_id, snapshot)
            return
        for child in list(para):
            para.remove(child)
        for child in snapshot:
            para.append(self._copy_tree(child))

    # ---- annotations -------------------------------------------------

    def _set_highlight_on_rPr(self, rPr, color: Optional[str]) -> None:
        if color is None:
            rPr._remove_highlight()
        else:
            rPr.get_or_add_highlight().set(W_VAL, color)

    def _highlight_of(self, run) -> Optional[str]:
        rPr = run.find(W_RPR)
        if rPr is None:
            return None
        highlight = rPr.find(W_HIGHLIGHT)
        return highlight.get(W_VAL) if highlight is not None else None

    def _do_annotate(self, handle: RangeHandle, tag: str, color: str) -> None:
        self._check_handle(handle)
        if tag in self._annotations:
            self._do_remove_annotation(tag)
        para = self._para(handle.paragraph_id)
        affected = self._runs_in_range(para, handle.start, handle.end)
        if not affected:
            raise StoreError(f"Nothing to annotate at {handle.start}-{handle.end} in {handle.paragraph_id}")

        bookmark_id = str(self._next_bookmark_id)
        self._next_bookmark_id += 1

        start_elem = OxmlElement('w:bookmarkStart')
        start_elem.set(W_ID, bookmark_id)
        start_elem.set(W_NAME, bookmark_name_for(tag))
        end_elem = OxmlElement('w:bookmarkEnd')
        end_elem.set(W_ID, bookmark_id)
        affected[0]['elem'].addprevious(start_elem)
        affected[-1]['elem'].addnext(end_elem)

        for info in affected:
            run = info['elem']
            # Existing highlights are the author's, leave them alone
            if self._highlight_of(run) is None:
                rPr = run.get_or_add_rPr()
                self._set_highlight_on_rPr(rPr, color)
                self._marked[rPr.find(W_HIGHLIGHT)] = tag

        self._annotations[tag] = bookmark_id
        if self.verbose:
            print(f"  [Annotate] {tag} -> {handle.paragraph_id}:{handle.start}-{handle.end} ({color})")

    def _do_remove_annotation(self, tag: str) -> None:
        bookmark_id = self._annotations.pop(tag, None)
        if bookmark_id is None:
            return
        for run in self.body_elem.iter(W_R):
            rPr = run.find(W_RPR)
            highlight = rPr.find(W_HIGHLIGHT) if rPr is not None else None
            if highlight is not None and self._marked.get(highlight) == tag:
                rPr.remove(highlight)
        self._marked = {elem: owner for elem, owner in self._marked.items() if owner != tag}

        markers = self._xpath(
            self.body_elem,
            f'.//w:bookmarkStart[@w:id="{bookmark_id}"] | .//w:bookmarkEnd[@w:id="{bookmark_id}"]'
        )
        for marker in markers:
            marker.getparent().remove(marker)
