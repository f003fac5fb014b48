"""
ABOUTME: Applies one Correction to a live document paragraph and verifies the result
ABOUTME: Falls back to whole-paragraph replacement on drift; rolls back on mismatch
"""

from typing import Optional, Tuple

from .common import (
    CHANGE_ADDITION,
    CHANGE_DELETION,
    CONTEXT_WINDOW,
    ERROR_INVALID_STATE,
    ERROR_PARAGRAPH_NOT_FOUND,
    ERROR_STORE_FAILURE,
    ERROR_VERIFICATION_FAILED,
    STATUS_APPLIED,
    STATUS_REJECTED,
    STRATEGY_CONTEXT,
    STRATEGY_LITERAL,
    STRATEGY_PARAGRAPH,
    ApplyResult,
    Correction,
    ParagraphNotFoundError,
    RangeHandle,
    collapse_whitespace,
    format_text_preview,
)
from .store import LiveDocumentStore


def locate_correction(store: LiveDocumentStore, correction: Correction,
                      context_window: int = CONTEXT_WINDOW) -> Tuple[Optional[RangeHandle], str]:
    """
    Find the live range a correction targets.

    Precedence:
        1. context search: the span plus up to context_window characters of
           original text either side
        2. literal search on the span itself (non-empty spans only)
        3. give up: the caller replaces the whole paragraph

    A search only counts when it yields exactly one match; anything else
    is ambiguous.

    Returns:
        (handle, strategy); handle is None for the paragraph strategy
    """
    text = correction.original_text
    start, end = correction.start_offset, correction.end_offset
    span = text[start:end]
    before = text[max(0, start - context_window):start]
    after = text[end:end + context_window]

    if before or after:
        matches = store.search(correction.paragraph_id, span, before, after)
        if len(matches) == 1:
            return matches[0], STRATEGY_CONTEXT

    if span:
        matches = store.search(correction.paragraph_id, span)
        if len(matches) == 1:
            return matches[0], STRATEGY_LITERAL

    return None, STRATEGY_PARAGRAPH


class CorrectionApplier:
    """
    Writes corrections into a LiveDocumentStore.

    apply() never raises: every failure comes back as an ApplyResult with
    an ERROR_* code.
    """

    def __init__(self, store: LiveDocumentStore, context_window: int = CONTEXT_WINDOW,
                 verbose: bool = False):
        self.store = store
        self.context_window = context_window
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message)

    def apply(self, correction: Correction) -> ApplyResult:
        if correction.status in (STATUS_APPLIED, STATUS_REJECTED):
            return ApplyResult(
                success=False, correction=correction, error=ERROR_INVALID_STATE,
                error_message=f"Correction {correction.id} is already {correction.status}",
            )

        para_id = correction.paragraph_id
        try:
            live_text = self.store.read_text(para_id)
            snapshot = self.store.snapshot(para_id)
        except ParagraphNotFoundError as e:
            return ApplyResult(
                success=False, correction=correction,
                error=ERROR_PARAGRAPH_NOT_FOUND, error_message=str(e),
            )
        except Exception as e:
            return ApplyResult(
                success=False, correction=correction,
                error=ERROR_STORE_FAILURE, error_message=str(e),
            )

        strategy = None
        try:
            strategy = self._mutate(correction, live_text)
            self.store.sync()
            result_text = self.store.read_text(para_id)
        except Exception as e:
            rolled_back = self._rollback(para_id, snapshot, live_text)
            error = ERROR_PARAGRAPH_NOT_FOUND if isinstance(e, ParagraphNotFoundError) else ERROR_STORE_FAILURE
            return ApplyResult(
                success=False, correction=correction, error=error,
                error_message=str(e), strategy=strategy, rolled_back=rolled_back,
            )

        if collapse_whitespace(result_text) != collapse_whitespace(correction.corrected_text):
            rolled_back = self._rollback(para_id, snapshot, live_text)
            return ApplyResult(
                success=False, correction=correction, error=ERROR_VERIFICATION_FAILED,
                error_message=(
                    f"Expected '{format_text_preview(correction.corrected_text, 60)}', "
                    f"found '{format_text_preview(result_text, 60)}'"
                ),
                strategy=strategy, rolled_back=rolled_back,
            )

        return ApplyResult(success=True, correction=correction, strategy=strategy)

    def _mutate(self, correction: Correction, live_text: str) -> str:
        """Queue the mutation for correction and return the strategy used"""
        para_id = correction.paragraph_id

        if collapse_whitespace(live_text) != collapse_whitespace(correction.original_text):
            self._log(f"  [Drift] {correction.id}: paragraph changed since corrections were "
                      f"computed, replacing whole paragraph")
            self.store.replace_content(para_id, correction.corrected_text)
            return STRATEGY_PARAGRAPH

        handle, strategy = locate_correction(self.store, correction, self.context_window)
        if handle is None:
            self._log(f"  [Fallback] {correction.id}: '{format_text_preview(correction.original_span)}' "
                      f"not uniquely found, replacing whole paragraph")
            self.store.replace_content(para_id, correction.corrected_text)
            return STRATEGY_PARAGRAPH

        if correction.change_type == CHANGE_ADDITION:
            self.store.insert_text(RangeHandle(para_id, handle.start, handle.start), correction.diff_text)
        elif correction.change_type == CHANGE_DELETION:
            self.store.delete_range(handle)
        else:
            self.store.replace_range(handle, correction.diff_text)
        return strategy

    def _rollback(self, paragraph_id: str, snapshot, snapshot_text: str) -> bool:
        """Restore the pre-mutation paragraph; True when the text matches exactly"""
        try:
            self.store.discard_pending()
            self.store.restore(paragraph_id, snapshot)
            self.store.sync()
            restored = self.store.read_text(paragraph_id) == snapshot_text
        except Exception as e:
            print(f"  [Rollback] Failed to restore paragraph {paragraph_id}: {e}")
            return False
        if restored:
            self._log(f"  [Rollback] Paragraph {paragraph_id} restored")
        else:
            print(f"  [Rollback] Paragraph {paragraph_id} differs from its snapshot after restore")
        return restored
