"""
Character-level diff with cleanup and tie-break policy.

Built on diff-match-patch (Myers bisection over code points). The raw diff
goes through, in order:

    1. semantic cleanup     - diff_cleanupSemantic
    2. efficiency cleanup   - diff_cleanupEfficiency, then very short equal
                              runs sandwiched between edits are folded into
                              the edit ("ie" -> "ei" is one replacement, not
                              delete "i" / keep "e" / insert "i")
    3. tie-break            - isolated edits slide right so the leading
                              equal run is as long as possible

Operations come back in original-text order.
"""

from typing import List, Sequence

from diff_match_patch import diff_match_patch

from .common import (
    ABSORB_EQUALITY_LENGTH,
    DIFF_EDIT_COST,
    OP_DELETE,
    OP_EQUAL,
    OP_INSERT,
    DiffFailure,
    DiffOperation,
    format_text_preview,
)


_DMP_OPS = {
    diff_match_patch.DIFF_EQUAL: OP_EQUAL,
    diff_match_patch.DIFF_INSERT: OP_INSERT,
    diff_match_patch.DIFF_DELETE: OP_DELETE,
}


def original_side(ops: Sequence[DiffOperation]) -> str:
    """Rebuild the original string from equal + delete operations"""
    return ''.join(text for op, text in ops if op != OP_INSERT)


def edited_side(ops: Sequence[DiffOperation]) -> str:
    """Rebuild the edited string from equal + insert operations"""
    return ''.join(text for op, text in ops if op != OP_DELETE)


def _append_equal(ops: List[DiffOperation], text: str) -> None:
    if not text:
        return
    if ops and ops[-1][0] == OP_EQUAL:
        ops[-1] = (OP_EQUAL, ops[-1][1] + text)
    else:
        ops.append((OP_EQUAL, text))


def _common_prefix_length(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[i] == b[i]:
        i += 1
    return i


def _common_suffix_length(a: str, b: str) -> int:
    n = min(len(a), len(b))
    i = 0
    while i < n and a[-1 - i] == b[-1 - i]:
        i += 1
    return i


def coalesce(ops: Sequence[DiffOperation]) -> List[DiffOperation]:
    """
    Normalize an operation list.

    Between two equalities all deletes are merged into one delete followed
    by all inserts merged into one insert; text shared at the start or end
    of such a replacement moves into the neighbouring equality. Adjacent
    equalities are merged and empty operations dropped.
    """
    result: List[DiffOperation] = []
    deleted = ''
    inserted = ''
    for op, text in list(ops) + [(OP_EQUAL, '')]:
        if op == OP_DELETE:
            deleted += text
            continue
        if op == OP_INSERT:
            inserted += text
            continue

        if deleted and inserted:
            prefix = _common_prefix_length(deleted, inserted)
            if prefix:
                _append_equal(result, inserted[:prefix])
                deleted = deleted[prefix:]
                inserted = inserted[prefix:]
            suffix = _common_suffix_length(deleted, inserted)
            if suffix:
                text = inserted[len(inserted) - suffix:] + text
                deleted = deleted[:len(deleted) - suffix]
                inserted = inserted[:len(inserted) - suffix]
        if deleted:
            result.append((OP_DELETE, deleted))
        if inserted:
            result.append((OP_INSERT, inserted))
        deleted = ''
        inserted = ''
        _append_equal(result, text)
    return result


def absorb_short_equalities(ops: Sequence[DiffOperation], max_length: int) -> List[DiffOperation]:
    """
    Fold equal runs of at most max_length characters that sit between two
    edits into the surrounding edit group.
    """
    if max_length <= 0:
        return list(ops)
    absorbed: List[DiffOperation] = []
    last = len(ops) - 1
    for i, (op, text) in enumerate(ops):
        if (op == OP_EQUAL and 0 < i < last and len(text) <= max_length
                and ops[i - 1][0] != OP_EQUAL and ops[i + 1][0] != OP_EQUAL):
            absorbed.append((OP_DELETE, text))
            absorbed.append((OP_INSERT, text))
        else:
            absorbed.append((op, text))
    return coalesce(absorbed)


def prefer_leading_equalities(ops: Sequence[DiffOperation]) -> List[DiffOperation]:
    """
    Apply the left-bias tie-break.

    An insert or delete bordered only by equalities (or the start of the
    text) can often sit at several positions with the same cost, e.g.
    "x cat" -> "x x cat" inserts "x " either before or after the first
    "x ". The edit is moved to its rightmost position, which keeps the
    equal run at the start of the region maximal.
    """
    ops = coalesce(ops)
    changed = True
    while changed:
        changed = False
        for i, (op, text) in enumerate(ops):
            if op == OP_EQUAL:
                continue
            if i > 0 and ops[i - 1][0] != OP_EQUAL:
                continue
            if i + 1 >= len(ops) or ops[i + 1][0] != OP_EQUAL:
                continue

            following = ops[i + 1][1]
            extended = text + following
            shift = 0
            while shift < len(following) and extended[shift] == following[shift]:
                shift += 1
            if not shift:
                continue

            moved = following[:shift]
            new_ops = list(ops[:i])
            _append_equal(new_ops, moved)
            new_ops.append((op, (text + moved)[shift:]))
            new_ops.append((OP_EQUAL, following[shift:]))
            new_ops.extend(ops[i + 2:])
            ops = coalesce(new_ops)
            changed = True
            break
    return ops


def check_round_trip(a: str, b: str, ops: Sequence[DiffOperation]) -> None:
    """Raise DiffFailure unless ops rebuild both a and b exactly"""
    if original_side(ops) != a:
        raise DiffFailure(
            f"Diff does not rebuild the original text: '{format_text_preview(a)}'"
        )
    if edited_side(ops) != b:
        raise DiffFailure(
            f"Diff does not rebuild the edited text: '{format_text_preview(b)}'"
        )
    for op, text in ops:
        if op not in (OP_EQUAL, OP_INSERT, OP_DELETE) or not text:
            raise DiffFailure(f"Malformed diff operation: ({op!r}, {text!r})")


class DiffEngine:
    """Configured diff-match-patch instance plus the cleanup/tie-break passes"""

    def __init__(self, edit_cost: int = DIFF_EDIT_COST,
                 absorb_length: int = ABSORB_EQUALITY_LENGTH):
        self.edit_cost = edit_cost
        self.absorb_length = absorb_length
        self._dmp = diff_match_patch()
        # No deadline: identical inputs must always give identical diffs
        self._dmp.Diff_Timeout = 0
        self._dmp.Diff_EditCost = edit_cost

    def diff(self, a: str, b: str) -> List[DiffOperation]:
        """
        Compute the cleaned-up operation list turning a into b.

        Raises:
            DiffFailure: if the result breaks the round-trip law
        """
        a = a or ''
        b = b or ''
        if a == b:
            return [(OP_EQUAL, a)] if a else []

        diffs = self._dmp.diff_main(a, b, False)
        self._dmp.diff_cleanupSemantic(diffs)
        self._dmp.diff_cleanupEfficiency(diffs)
        ops = coalesce([(_DMP_OPS[op], text) for op, text in diffs])

        # Absorbing and sliding can each expose work for the other
        previous = None
        while ops != previous:
            previous = ops
            ops = absorb_short_equalities(ops, self.absorb_length)
            ops = prefer_leading_equalities(ops)

        check_round_trip(a, b, ops)
        return ops


def compute_diff(a: str, b: str, edit_cost: int = DIFF_EDIT_COST,
                 absorb_length: int = ABSORB_EQUALITY_LENGTH) -> List[DiffOperation]:
    """Diff a against b with a one-off engine"""
    return DiffEngine(edit_cost=edit_cost, absorb_length=absorb_length).diff(a, b)
