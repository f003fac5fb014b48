"""
Correction synthesis: turns diff operations into located Correction records.

Offsets are paragraph-relative and always point into the ORIGINAL text.
Inserted text has no extent in that coordinate space, so additions are
zero-width and never move the cursor.
"""

import re
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from .common import (
    CHANGE_ADDITION,
    CHANGE_DELETION,
    CHANGE_MODIFICATION,
    OP_DELETE,
    OP_EQUAL,
    OP_INSERT,
    STATUS_PENDING,
    STATUS_SKIPPED,
    Correction,
    DiffFailure,
    DiffOperation,
    Paragraph,
    splice,
)
from .diff_engine import DiffEngine, original_side
from .normalizer import normalize


_LEADING_WS = re.compile(r'^\s*')
_TRAILING_WS = re.compile(r'\s*$')


def correction_id(paragraph_id: str, sequence: int) -> str:
    """Deterministic id so re-runs over the same input give the same ids"""
    return f"{paragraph_id}-{sequence}"


def _display(text: str) -> str:
    if len(text) == 1:
        return text
    return text.strip() or text


def suggestion_for(change_type: str, diff_text: str, original_span: str = '') -> str:
    """
    Human-readable action text. Presentation only, never parsed back.

    Examples:
        addition "," -> 'Add ","'
        deletion " very" -> 'Remove "very"'
        modification "ie" -> "ei" -> 'Change "ie" to "ei"'
    """
    if change_type == CHANGE_ADDITION:
        return f'Add "{_display(diff_text)}"'
    if change_type == CHANGE_DELETION:
        return f'Remove "{_display(diff_text)}"'
    return f'Change "{_display(original_span)}" to "{_display(diff_text)}"'


def _make_correction(paragraph_number: int, paragraph_id: str, original_text: str,
                     sequence: int, change_type: str, start: int, end: int,
                     diff_text: str) -> Correction:
    replacement = '' if change_type == CHANGE_DELETION else diff_text
    return Correction(
        id=correction_id(paragraph_id, sequence),
        paragraph_number=paragraph_number,
        paragraph_id=paragraph_id,
        original_text=original_text,
        corrected_text=splice(original_text, start, end, replacement),
        change_type=change_type,
        diff_text=diff_text,
        start_offset=start,
        end_offset=end,
        suggestion=suggestion_for(change_type, diff_text, original_text[start:end]),
    )


def synthesize(paragraph_number: int, paragraph_id: str, original_text: str,
               ops: Sequence[DiffOperation]) -> List[Correction]:
    """
    Walk diff operations with a cursor over original_text and emit one
    Correction per non-equal span. A delete directly followed by an insert
    becomes a single modification.

    Raises:
        DiffFailure: if the operations do not rebuild original_text
    """
    if original_side(ops) != original_text:
        raise DiffFailure(
            f"Diff operations do not match paragraph {paragraph_number} original text"
        )

    corrections: List[Correction] = []
    cursor = 0
    i = 0
    while i < len(ops):
        op, text = ops[i]
        if op == OP_EQUAL:
            cursor += len(text)
        elif op == OP_DELETE:
            end = cursor + len(text)
            if i + 1 < len(ops) and ops[i + 1][0] == OP_INSERT:
                inserted = ops[i + 1][1]
                corrections.append(_make_correction(
                    paragraph_number, paragraph_id, original_text, len(corrections),
                    CHANGE_MODIFICATION, cursor, end, inserted))
                i += 1
            else:
                corrections.append(_make_correction(
                    paragraph_number, paragraph_id, original_text, len(corrections),
                    CHANGE_DELETION, cursor, end, text))
            cursor = end
        elif op == OP_INSERT:
            corrections.append(_make_correction(
                paragraph_number, paragraph_id, original_text, len(corrections),
                CHANGE_ADDITION, cursor, cursor, text))
        else:
            raise DiffFailure(f"Unknown diff operation: {op!r}")
        i += 1
    return corrections


def corrected_paragraph_text(original_text: str, edited_text: str) -> str:
    """
    Normalized edited text, framed by the original's outer whitespace.

    normalize() trims, so without this every paragraph whose live text has
    a trailing space would get a spurious deletion.
    """
    cleaned = normalize(edited_text)
    if not original_text.strip():
        return cleaned
    leading = _LEADING_WS.match(original_text).group(0)
    trailing = _TRAILING_WS.search(original_text).group(0)
    return leading + cleaned + trailing


def build_paragraph_corrections(paragraph: Paragraph, engine: Optional[DiffEngine] = None,
                                paragraph_number: Optional[int] = None,
                                paragraph_id: Optional[str] = None) -> List[Correction]:
    """
    Compute the corrections for one paragraph.

    paragraph_number/paragraph_id override the record's own values when the
    corrections target a live paragraph at another position.
    """
    number = paragraph.paragraph_number if paragraph_number is None else paragraph_number
    para_id = paragraph.native_paragraph_id if paragraph_id is None else paragraph_id
    original = paragraph.original_text or ''

    # Dominant case: nothing changed once markup is gone
    if normalize(original) == normalize(paragraph.edited_text):
        return []

    corrected = corrected_paragraph_text(original, paragraph.edited_text)
    engine = engine or DiffEngine()
    ops = engine.diff(original, corrected)
    return synthesize(number, para_id, original, ops)


def follows(other: Correction, applied: Correction) -> bool:
    """True when `other` lies after `applied` in the original paragraph text"""
    if other.start_offset == other.end_offset == applied.start_offset:
        # Zero-width addition at the start of the applied span stays in front of it
        return False
    return other.start_offset >= applied.end_offset


def rebase_correction(other: Correction, applied: Correction,
                      after: Optional[bool] = None) -> Correction:
    """
    Move an open sibling onto the paragraph text produced by `applied`.

    Args:
        other: Correction from the same paragraph, still pending or skipped
        applied: Correction that was just written into the paragraph
        after: Whether `other` comes after `applied` in original-text order.
            Worked out from the offsets when not given.

    Returns:
        A new Correction with updated texts and offsets (same id and status)
    """
    if after is None:
        after = follows(other, applied)
    delta = len(applied.replacement_text) - (applied.end_offset - applied.start_offset)
    start, end = other.start_offset, other.end_offset
    if after:
        start += delta
        end += delta
    base = applied.corrected_text
    return replace(
        other,
        original_text=base,
        corrected_text=splice(base, start, end, other.replacement_text),
        start_offset=start,
        end_offset=end,
    )


def validate_corrections(corrections: Sequence[Correction]) -> List[Tuple[Correction, str]]:
    """
    Check offsets and texts of every correction against its own paragraph.

    Returns:
        List of (correction, problem) for every invalid correction
    """
    problems = []
    for c in corrections:
        length = len(c.original_text)
        if not 0 <= c.start_offset <= c.end_offset <= length:
            problems.append((c, f"Offsets {c.start_offset}-{c.end_offset} outside 0-{length}"))
            continue
        if c.change_type == CHANGE_ADDITION and c.start_offset != c.end_offset:
            problems.append((c, "Addition is not zero-width"))
            continue
        if c.change_type == CHANGE_DELETION and c.original_span != c.diff_text:
            problems.append((c, f"Deleted text mismatch: expected '{c.diff_text}', found '{c.original_span}'"))
            continue
        expected = splice(c.original_text, c.start_offset, c.end_offset, c.replacement_text)
        if expected != c.corrected_text:
            problems.append((c, "Corrected text does not match the located edit"))
    return problems


def is_open(correction: Correction) -> bool:
    return correction.status in (STATUS_PENDING, STATUS_SKIPPED)
