"""
Live document store: the paragraph-addressable text the corrections are
applied to.

Mutations are queued and only take effect on sync(); reads always observe
the last flushed state. Subclasses implement the _do_* primitives.
"""

from typing import Dict, List, Tuple

from .common import (
    LiveParagraph,
    ParagraphNotFoundError,
    RangeHandle,
    StoreError,
)


def find_all(haystack: str, needle: str) -> List[int]:
    """Start index of every (possibly overlapping) occurrence of needle"""
    positions = []
    if not needle:
        return positions
    pos = haystack.find(needle)
    while pos != -1:
        positions.append(pos)
        pos = haystack.find(needle, pos + 1)
    return positions


class LiveDocumentStore:
    """Base class for live document bindings"""

    def __init__(self):
        self._pending: List[Tuple[str, tuple]] = []

    # ---- reads -------------------------------------------------------

    def list_paragraphs(self) -> List[LiveParagraph]:
        raise NotImplementedError

    def read_text(self, paragraph_id: str) -> str:
        raise NotImplementedError

    def search(self, paragraph_id: str, text: str,
               before: str = '', after: str = '') -> List[RangeHandle]:
        """
        Locate text inside a paragraph, optionally anchored by context.

        The search pattern is before + text + after; the returned handles
        cover only `text`. With an empty `text` the handles are zero-width
        insertion points between the two context strings.
        """
        pattern = before + text + after
        if not pattern:
            return []
        paragraph_text = self.read_text(paragraph_id)
        return [
            RangeHandle(paragraph_id, pos + len(before), pos + len(before) + len(text))
            for pos in find_all(paragraph_text, pattern)
        ]

    def snapshot(self, paragraph_id: str):
        """Opaque paragraph state that restore() brings back"""
        return self.read_text(paragraph_id)

    # ---- queued writes -----------------------------------------------

    def insert_text(self, handle: RangeHandle, text: str) -> None:
        self._pending.append(('insert', (handle, text)))

    def delete_range(self, handle: RangeHandle) -> None:
        self._pending.append(('delete', (handle,)))

    def replace_range(self, handle: RangeHandle, text: str) -> None:
        self._pending.append(('replace', (handle, text)))

    def replace_content(self, paragraph_id: str, text: str) -> None:
        self._pending.append(('replace_content', (paragraph_id, text)))

    def clear(self, paragraph_id: str) -> None:
        self._pending.append(('clear', (paragraph_id,)))

    def restore(self, paragraph_id: str, snapshot) -> None:
        self._pending.append(('restore', (paragraph_id, snapshot)))

    def annotate(self, handle: RangeHandle, tag: str, color: str) -> None:
        self._pending.append(('annotate', (handle, tag, color)))

    def remove_annotation(self, tag: str) -> None:
        self._pending.append(('remove_annotation', (tag,)))

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def discard_pending(self) -> None:
        self._pending = []

    def sync(self) -> None:
        """
        Flush queued operations in order.

        The queue is emptied first; if one operation fails the rest of the
        batch is dropped and the error propagates.
        """
        pending, self._pending = self._pending, []
        for name, args in pending:
            getattr(self, f'_do_{name}')(*args)

    # ---- primitives --------------------------------------------------

    def _check_handle(self, handle: RangeHandle) -> str:
        text = self.read_text(handle.paragraph_id)
        if not 0 <= handle.start <= handle.end <= len(text):
            raise StoreError(
                f"Range {handle.start}-{handle.end} outside paragraph "
                f"{handle.paragraph_id} (length {len(text)})"
            )
        return text

    def _do_insert(self, handle: RangeHandle, text: str) -> None:
        raise NotImplementedError

    def _do_delete(self, handle: RangeHandle) -> None:
        raise NotImplementedError

    def _do_replace(self, handle: RangeHandle, text: str) -> None:
        self._do_delete(handle)
        self._do_insert(RangeHandle(handle.paragraph_id, handle.start, handle.start), text)

    def _do_replace_content(self, paragraph_id: str, text: str) -> None:
        raise NotImplementedError

    def _do_clear(self, paragraph_id: str) -> None:
        self._do_replace_content(paragraph_id, '')

    def _do_restore(self, paragraph_id: str, snapshot) -> None:
        self._do_replace_content(paragraph_id, snapshot)

    def _do_annotate(self, handle: RangeHandle, tag: str, color: str) -> None:
        raise NotImplementedError

    def _do_remove_annotation(self, tag: str) -> None:
        raise NotImplementedError


class TextBufferStore(LiveDocumentStore):
    """In-memory store over plain paragraph strings"""

    def __init__(self, paragraphs: List[str], paragraph_ids: List[str] = None):
        super().__init__()
        if paragraph_ids is None:
            paragraph_ids = [f"P{i + 1}" for i in range(len(paragraphs))]
        if len(paragraph_ids) != len(paragraphs):
            raise ValueError("paragraph_ids and paragraphs differ in length")
        self._ids: List[str] = list(paragraph_ids)
        self._texts: Dict[str, str] = dict(zip(self._ids, paragraphs))
        # tag -> (handle, color)
        self.annotations: Dict[str, Tuple[RangeHandle, str]] = {}

    def list_paragraphs(self) -> List[LiveParagraph]:
        return [
            LiveParagraph(pid, i + 1, self._texts[pid])
            for i, pid in enumerate(self._ids)
        ]

    def read_text(self, paragraph_id: str) -> str:
        if paragraph_id not in self._texts:
            raise ParagraphNotFoundError(f"Paragraph ID {paragraph_id} not found")
        return self._texts[paragraph_id]

    def _do_insert(self, handle: RangeHandle, text: str) -> None:
        current = self._check_handle(handle)
        self._texts[handle.paragraph_id] = current[:handle.start] + text + current[handle.start:]

    def _do_delete(self, handle: RangeHandle) -> None:
        current = self._check_handle(handle)
        self._texts[handle.paragraph_id] = current[:handle.start] + current[handle.end:]

    def _do_replace_content(self, paragraph_id: str, text: str) -> None:
        self.read_text(paragraph_id)
        self._texts[paragraph_id] = text

    def _do_annotate(self, handle: RangeHandle, tag: str, color: str) -> None:
        self._check_handle(handle)
        self.annotations[tag] = (handle, color)

    def _do_remove_annotation(self, tag: str) -> None:
        self.annotations.pop(tag, None)
