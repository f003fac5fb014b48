"""
ABOUTME: Review session state machine over a list of Corrections
ABOUTME: Cursor navigation, apply/reject/skip decisions, bulk actions and progress
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from .applier import CorrectionApplier, locate_correction
from .common import (
    ANNOTATION_WINDOW,
    ERROR_INVALID_STATE,
    FALLBACK_HIGHLIGHT,
    HIGHLIGHT_COLORS,
    STATUS_APPLIED,
    STATUS_PENDING,
    STATUS_REJECTED,
    STATUS_SKIPPED,
    ApplyResult,
    Correction,
    RangeHandle,
    ReviewProgress,
    ReviewStateError,
    can_transition,
)
from .store import LiveDocumentStore
from .synthesizer import is_open, rebase_correction


class ReviewSession:
    """
    One reviewer walking a list of corrections.

    The corrections are copied at start_review(); statuses change only
    through session operations. A failed apply changes nothing: the
    correction stays open and the cursor stays put.
    """

    def __init__(self, applier: CorrectionApplier, store: Optional[LiveDocumentStore] = None,
                 annotate: bool = True, verbose: bool = False,
                 on_progress: Optional[Callable[[ReviewProgress], None]] = None,
                 on_correction_change: Optional[Callable[[Optional[Correction]], None]] = None):
        self.applier = applier
        self.store = store if store is not None else applier.store
        self.annotate = annotate
        self.verbose = verbose
        self.on_progress = on_progress
        self.on_correction_change = on_correction_change

        self._corrections: List[Correction] = []
        self._cursor = 0
        self._active = False
        self._applying = False
        self._annotated: List[str] = []
        self.started_at: Optional[datetime] = None

    def _log(self, message: str):
        if self.verbose:
            print(message)

    # ---- lifecycle ---------------------------------------------------

    def start_review(self, corrections: List[Correction]) -> ReviewProgress:
        """
        Start a session over a copy of corrections.

        A running session is discarded first; document changes it already
        made stay in the document.
        """
        if self._active:
            self._remove_annotations()

        self._corrections = [replace(c) for c in corrections]
        self._cursor = 0
        self._active = True
        self.started_at = datetime.now()
        self._log(f"  [Review] Started with {len(self._corrections)} corrections")

        if self.annotate and self.store is not None:
            for correction in self._corrections:
                if is_open(correction):
                    self._annotate(correction)

        self._notify()
        return self.progress()

    def end_review(self) -> ReviewProgress:
        """Final progress; removes remaining preview annotations and discards state"""
        if self._applying:
            raise ReviewStateError("Cannot end review while a correction is being applied")
        final = self.progress()
        self._remove_annotations()
        self._log(f"  [Review] Ended: {final.applied} applied, {final.rejected} rejected, "
                  f"{final.skipped} skipped, {final.pending} pending")
        self._corrections = []
        self._cursor = 0
        self._active = False
        self.started_at = None
        return final

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def corrections(self) -> List[Correction]:
        return list(self._corrections)

    @property
    def cursor(self) -> int:
        return self._cursor

    # ---- cursor ------------------------------------------------------

    def current(self) -> Optional[Correction]:
        if not self._active or self._cursor >= len(self._corrections):
            return None
        return self._corrections[self._cursor]

    def navigate_next(self) -> Optional[Correction]:
        return self.navigate_to(self._cursor + 1)

    def navigate_previous(self) -> Optional[Correction]:
        return self.navigate_to(self._cursor - 1)

    def navigate_to(self, index: int) -> Optional[Correction]:
        """Move the cursor, clamped to [0, len); statuses are untouched"""
        if not self._corrections:
            return None
        self._cursor = max(0, min(index, len(self._corrections) - 1))
        self._notify()
        return self.current()

    def _advance(self):
        self._cursor = min(self._cursor + 1, len(self._corrections))

    # ---- decisions on the current correction ---------------------------

    def apply_current(self) -> Optional[ApplyResult]:
        """
        Apply the current correction and advance on success.

        Returns:
            ApplyResult, or None when there is no current correction
        """
        correction = self.current()
        if correction is None:
            return None
        result = self._apply(self._cursor)
        if result.success:
            self._advance()
        self._notify()
        return result

    def reject_current(self) -> bool:
        if self.current() is None:
            return False
        if not self._set_status(self._cursor, STATUS_REJECTED):
            return False
        self._advance()
        self._notify()
        return True

    def skip_current(self) -> bool:
        if self.current() is None:
            return False
        if not self._set_status(self._cursor, STATUS_SKIPPED):
            return False
        self._advance()
        self._notify()
        return True

    # ---- random access -----------------------------------------------

    def _index_of(self, correction_id: str) -> int:
        for i, c in enumerate(self._corrections):
            if c.id == correction_id:
                return i
        raise KeyError(f"Unknown correction: {correction_id}")

    def apply_correction(self, correction_id: str) -> ApplyResult:
        """Apply a correction by id without moving the cursor"""
        result = self._apply(self._index_of(correction_id))
        self._notify()
        return result

    def reject_correction(self, correction_id: str) -> bool:
        changed = self._set_status(self._index_of(correction_id), STATUS_REJECTED)
        self._notify()
        return changed

    def apply_all_pending(self, include_skipped: bool = False) -> List[ApplyResult]:
        """Apply every pending (and optionally skipped) correction in list order"""
        wanted = (STATUS_PENDING, STATUS_SKIPPED) if include_skipped else (STATUS_PENDING,)
        ids = [c.id for c in self._corrections if c.status in wanted]
        results = [self._apply(self._index_of(cid)) for cid in ids]
        self._notify()
        return results

    def reject_all_pending(self, include_skipped: bool = False) -> int:
        wanted = (STATUS_PENDING, STATUS_SKIPPED) if include_skipped else (STATUS_PENDING,)
        count = 0
        for i, c in enumerate(self._corrections):
            if c.status in wanted and self._set_status(i, STATUS_REJECTED):
                count += 1
        self._notify()
        return count

    def skipped_corrections(self) -> List[Correction]:
        return [c for c in self._corrections if c.status == STATUS_SKIPPED]

    def is_complete(self) -> bool:
        return self._active and self.progress().pending == 0

    # ---- progress ----------------------------------------------------

    def progress(self) -> ReviewProgress:
        """Counts recomputed from the current statuses"""
        total = len(self._corrections)
        counts = {STATUS_APPLIED: 0, STATUS_REJECTED: 0, STATUS_SKIPPED: 0, STATUS_PENDING: 0}
        for c in self._corrections:
            counts[c.status] += 1
        return ReviewProgress(
            current_position=min(self._cursor + 1, total) if total else 0,
            total=total,
            applied=counts[STATUS_APPLIED],
            rejected=counts[STATUS_REJECTED],
            skipped=counts[STATUS_SKIPPED],
            pending=counts[STATUS_PENDING],
        )

    def _notify(self):
        if self.on_progress:
            self.on_progress(self.progress())
        if self.on_correction_change:
            self.on_correction_change(self.current())

    # ---- internals ---------------------------------------------------

    def _set_status(self, index: int, status: str) -> bool:
        correction = self._corrections[index]
        if not can_transition(correction.status, status):
            self._log(f"  [Review] {correction.id}: {correction.status} -> {status} not allowed")
            return False
        self._corrections[index] = replace(correction, status=status)
        if status == STATUS_REJECTED:
            self._unannotate(correction)
        return True

    def _apply(self, index: int) -> ApplyResult:
        correction = self._corrections[index]
        if not can_transition(correction.status, STATUS_APPLIED):
            return ApplyResult(
                success=False, correction=correction, error=ERROR_INVALID_STATE,
                error_message=f"Correction {correction.id} is already {correction.status}",
            )

        self._applying = True
        try:
            result = self.applier.apply(correction)
        finally:
            self._applying = False

        if not result.success:
            self._log(f"  [Review] {correction.id} not applied: {result.error_message}")
            return result

        applied = replace(correction, status=STATUS_APPLIED)
        self._corrections[index] = applied
        self._unannotate(applied)
        self._rebase_siblings(index, applied)
        result.correction = applied
        return result

    def _rebase_siblings(self, index: int, applied: Correction):
        """Move open corrections of the same paragraph onto the new paragraph text"""
        for i, other in enumerate(self._corrections):
            if i == index or other.paragraph_id != applied.paragraph_id or not is_open(other):
                continue
            self._corrections[i] = rebase_correction(other, applied)

    def _annotate(self, correction: Correction):
        tag = correction.annotation_tag
        try:
            handle, _ = locate_correction(self.store, correction, self.applier.context_window)
            text_len = len(self.store.read_text(correction.paragraph_id))
            color = HIGHLIGHT_COLORS[correction.change_type]
            if handle is not None and handle.is_insertion_point:
                # An insertion point has nothing to highlight: mark its surroundings
                handle = RangeHandle(
                    handle.paragraph_id,
                    max(0, handle.start - ANNOTATION_WINDOW),
                    min(text_len, handle.end + ANNOTATION_WINDOW),
                )
            if handle is None or handle.is_insertion_point:
                if not text_len:
                    self._log(f"  [Annotate] {correction.id}: empty paragraph, nothing to mark")
                    return
                handle = RangeHandle(correction.paragraph_id, 0, text_len)
                color = FALLBACK_HIGHLIGHT
            self.store.annotate(handle, tag, color)
            self.store.sync()
            self._annotated.append(tag)
        except Exception as e:
            self.store.discard_pending()
            print(f"  [Annotate] Failed to mark {correction.id}: {e}")

    def _unannotate(self, correction: Correction):
        tag = correction.annotation_tag
        if self.store is None or tag not in self._annotated:
            return
        self._annotated.remove(tag)
        try:
            self.store.remove_annotation(tag)
            self.store.sync()
        except Exception as e:
            self.store.discard_pending()
            print(f"  [Annotate] Failed to remove {tag}: {e}")

    def _remove_annotations(self):
        for correction in self._corrections:
            self._unannotate(correction)
