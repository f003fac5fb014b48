"""
ABOUTME: Correction review engine - diff edited paragraphs into located corrections
ABOUTME: and walk them through an apply/reject/skip review against a live document
"""

from .applier import CorrectionApplier, locate_correction
from .common import (
    ApplyResult,
    Correction,
    CorrectionBuildResult,
    DiffFailure,
    LiveParagraph,
    MappingFailure,
    Paragraph,
    ParagraphNotFoundError,
    RangeHandle,
    ReviewProgress,
    ReviewStateError,
    StoreError,
    SynthesisFailure,
)
from .diff_engine import DiffEngine, compute_diff
from .docx_store import DocxDocumentStore
from .matcher import map_paragraph, match_paragraph
from .normalizer import normalize, strip_markup_tags
from .pipeline import (
    build_corrections,
    build_corrections_for_store,
    document_offset_map,
    paragraphs_from_records,
)
from .session import ReviewSession
from .store import LiveDocumentStore, TextBufferStore
from .synthesizer import build_paragraph_corrections, synthesize
