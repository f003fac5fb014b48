"""
ABOUTME: Shared constants, data classes and helpers for the correction review engine
ABOUTME: Holds the Paragraph/Correction/ApplyResult records and the error taxonomy
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


# ============================================================
# Constants
# ============================================================

NS = {
    'w': 'http://schemas.openxmlformats.org/wordprocessingml/2006/main',
    'w14': 'http://schemas.microsoft.com/office/word/2010/wordml',
}

# Paragraph matching
FUZZY_MATCH_THRESHOLD = 0.80   # fraction of target words found in a candidate
FUZZY_MIN_WORDS = 5            # fuzzy matching needs more words than this

# Correction applier
CONTEXT_WINDOW = 10            # characters of context either side of a span
ANNOTATION_WINDOW = 3          # characters highlighted around an insertion point

# Diff engine
DIFF_EDIT_COST = 4             # diff-match-patch Diff_EditCost for efficiency cleanup
ABSORB_EQUALITY_LENGTH = 1     # equal runs this short between edits are folded in

# Diff operation tags
OP_EQUAL = 'equal'
OP_INSERT = 'insert'
OP_DELETE = 'delete'

# Change types
CHANGE_ADDITION = 'addition'
CHANGE_DELETION = 'deletion'
CHANGE_MODIFICATION = 'modification'

# Correction status
STATUS_PENDING = 'pending'
STATUS_APPLIED = 'applied'
STATUS_REJECTED = 'rejected'
STATUS_SKIPPED = 'skipped'

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: (STATUS_APPLIED, STATUS_REJECTED, STATUS_SKIPPED),
    STATUS_SKIPPED: (STATUS_APPLIED, STATUS_REJECTED, STATUS_SKIPPED),
    STATUS_APPLIED: (),
    STATUS_REJECTED: (),
}

# Apply strategies (which locate step produced the mutated range)
STRATEGY_CONTEXT = 'context'
STRATEGY_LITERAL = 'literal'
STRATEGY_PARAGRAPH = 'paragraph'

# Apply error codes
ERROR_VERIFICATION_FAILED = 'verification_failed'
ERROR_STORE_FAILURE = 'store_failure'
ERROR_PARAGRAPH_NOT_FOUND = 'paragraph_not_found'
ERROR_INVALID_STATE = 'invalid_state'

# Preview highlight colours (w:highlight values)
HIGHLIGHT_COLORS = {
    CHANGE_ADDITION: 'green',
    CHANGE_DELETION: 'magenta',
    CHANGE_MODIFICATION: 'cyan',
}
FALLBACK_HIGHLIGHT = 'yellow'

ANNOTATION_TAG_PREFIX = 'correction_'


# ============================================================
# Exceptions
# ============================================================

class DiffFailure(Exception):
    """Diff output broke the round-trip law (should never happen)"""


class StoreError(Exception):
    """Live document store could not serve a request"""


class ParagraphNotFoundError(StoreError):
    """Paragraph id is unknown to the live document store"""


class ReviewStateError(Exception):
    """Review session used out of order"""


# ============================================================
# Data Classes
# ============================================================

# (op, text) where op is OP_EQUAL | OP_INSERT | OP_DELETE
DiffOperation = Tuple[str, str]


@dataclass(frozen=True)
class Paragraph:
    """Single paragraph record from the edited-document JSON"""
    paragraph_number: int        # 1-based document position
    native_paragraph_id: str     # w14:paraId of the source paragraph
    original_text: str           # Markup-free baseline
    edited_text: str             # Edited version, may carry markup
    marked_text: str = ''        # Baseline with authoring markup


@dataclass
class Correction:
    """One located, classified edit inside a single paragraph"""
    id: str
    paragraph_number: int
    paragraph_id: str
    original_text: str           # Paragraph text before this correction
    corrected_text: str          # Paragraph text once this correction is applied
    change_type: str             # addition | deletion | modification
    diff_text: str               # Inserted text, or removed text for deletions
    start_offset: int
    end_offset: int
    suggestion: str = ''
    status: str = STATUS_PENDING

    @property
    def original_span(self) -> str:
        """Text covered by [start_offset, end_offset) in original_text"""
        return self.original_text[self.start_offset:self.end_offset]

    @property
    def replacement_text(self) -> str:
        """Text written at start_offset when this correction is applied"""
        return '' if self.change_type == CHANGE_DELETION else self.diff_text

    @property
    def annotation_tag(self) -> str:
        return f"{ANNOTATION_TAG_PREFIX}{self.id}"

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'paragraph_number': self.paragraph_number,
            'paragraph_id': self.paragraph_id,
            'change_type': self.change_type,
            'diff_text': self.diff_text,
            'start_offset': self.start_offset,
            'end_offset': self.end_offset,
            'suggestion': self.suggestion,
            'status': self.status,
            'original_text': self.original_text,
            'corrected_text': self.corrected_text,
        }


@dataclass
class ReviewProgress:
    """Counts for a review session, recomputed on every request"""
    current_position: int
    total: int
    applied: int = 0
    rejected: int = 0
    skipped: int = 0
    pending: int = 0

    def to_dict(self) -> Dict:
        return {
            'current': self.current_position,
            'total': self.total,
            'applied': self.applied,
            'rejected': self.rejected,
            'skipped': self.skipped,
            'pending': self.pending,
        }


@dataclass
class ApplyResult:
    """Result of applying one correction to the live document"""
    success: bool
    correction: Correction
    error: Optional[str] = None          # ERROR_* code when success is False
    error_message: Optional[str] = None
    strategy: Optional[str] = None       # context | literal | paragraph
    rolled_back: bool = False


@dataclass(frozen=True)
class LiveParagraph:
    """Paragraph as currently held by a live document store"""
    paragraph_id: str
    paragraph_number: int
    text: str


@dataclass(frozen=True)
class RangeHandle:
    """Located [start, end) range inside one live paragraph"""
    paragraph_id: str
    start: int
    end: int

    @property
    def is_insertion_point(self) -> bool:
        return self.start == self.end


@dataclass
class MappingFailure:
    """Live paragraph that could not be matched to any source paragraph"""
    paragraph_number: int
    paragraph_id: str
    text_preview: str


@dataclass
class SynthesisFailure:
    """Paragraph whose corrections could not be computed"""
    paragraph_number: int
    paragraph_id: str
    error_message: str


@dataclass
class CorrectionBuildResult:
    """Corrections plus everything that was excluded along the way"""
    corrections: List[Correction] = field(default_factory=list)
    unmapped: List[MappingFailure] = field(default_factory=list)
    failures: List[SynthesisFailure] = field(default_factory=list)
    mapped: Dict[str, int] = field(default_factory=dict)
    unchanged: int = 0
    # live paragraph id -> paragraph_number of the source record it was matched to
    source_numbers: Dict[str, int] = field(default_factory=dict)

    def source_number(self, correction: Correction) -> int:
        """Source record number behind a correction (for document-level offsets)"""
        return self.source_numbers.get(correction.paragraph_id, correction.paragraph_number)


# ============================================================
# Helper Functions
# ============================================================

def collapse_whitespace(text: str) -> str:
    """
    Collapse whitespace for comparison: trim and turn every run into one space.

    Examples:
        "  Hello\\n  World " -> "Hello World"
    """
    if not text:
        return ''
    return ' '.join(text.split())


def splice(text: str, start: int, end: int, replacement: str) -> str:
    """Replace text[start:end] with replacement"""
    return text[:start] + replacement + text[end:]


def format_text_preview(text: str, max_len: int = 30) -> str:
    """
    Format text for log output: remove newlines and truncate.

    Args:
        text: Text to format
        max_len: Maximum length before truncation

    Returns:
        Clean, truncated text with "..." suffix if truncated
    """
    clean = collapse_whitespace(text)
    if len(clean) > max_len:
        return clean[:max_len] + "..."
    return clean


def can_transition(current: str, target: str) -> bool:
    """Check whether a correction may move from current to target status"""
    return target in ALLOWED_TRANSITIONS.get(current, ())
