"""
ABOUTME: Builds the correction list for a document (matching + diff + synthesis)
ABOUTME: Collects mapping and synthesis failures alongside the successful results
"""

from typing import Dict, List, Optional, Sequence, Tuple

from .common import (
    FUZZY_MATCH_THRESHOLD,
    FUZZY_MIN_WORDS,
    CorrectionBuildResult,
    DiffFailure,
    MappingFailure,
    Paragraph,
    SynthesisFailure,
    format_text_preview,
)
from .diff_engine import DiffEngine
from .matcher import map_paragraph
from .store import LiveDocumentStore
from .synthesizer import build_paragraph_corrections


def build_corrections(paragraphs: Sequence[Paragraph],
                      engine: Optional[DiffEngine] = None) -> CorrectionBuildResult:
    """Corrections for paragraphs addressed by their own native ids"""
    engine = engine or DiffEngine()
    result = CorrectionBuildResult()
    for paragraph in paragraphs:
        try:
            corrections = build_paragraph_corrections(paragraph, engine)
        except DiffFailure as e:
            result.failures.append(SynthesisFailure(
                paragraph.paragraph_number, paragraph.native_paragraph_id, str(e)))
            continue
        if corrections:
            result.corrections.extend(corrections)
        else:
            result.unchanged += 1
    return result


def build_corrections_for_store(paragraphs: Sequence[Paragraph], store: LiveDocumentStore,
                                threshold: float = FUZZY_MATCH_THRESHOLD,
                                min_words: int = FUZZY_MIN_WORDS,
                                engine: Optional[DiffEngine] = None,
                                verbose: bool = False) -> CorrectionBuildResult:
    """
    Corrections addressed to the paragraphs of a live document.

    Every live paragraph is mapped to a source record (exact, fuzzy, then
    positional); the corrections carry the live paragraph's id and number,
    and result.source_numbers remembers which record each one came from.
    Unmapped paragraphs and paragraphs whose diff fails are recorded and
    skipped, the rest still produce corrections.
    """
    engine = engine or DiffEngine()
    result = CorrectionBuildResult()

    for live in store.list_paragraphs():
        paragraph, method = map_paragraph(paragraphs, live.text, live.paragraph_number,
                                          threshold=threshold, min_words=min_words)
        if paragraph is None:
            result.unmapped.append(MappingFailure(
                live.paragraph_number, live.paragraph_id, format_text_preview(live.text)))
            if verbose:
                print(f"  [Warning] Paragraph {live.paragraph_number} not mapped: "
                      f"'{format_text_preview(live.text)}'")
            continue
        result.mapped[method] = result.mapped.get(method, 0) + 1
        result.source_numbers[live.paragraph_id] = paragraph.paragraph_number

        try:
            corrections = build_paragraph_corrections(
                paragraph, engine,
                paragraph_number=live.paragraph_number,
                paragraph_id=live.paragraph_id,
            )
        except DiffFailure as e:
            result.failures.append(SynthesisFailure(
                live.paragraph_number, live.paragraph_id, str(e)))
            print(f"  [Warning] Paragraph {live.paragraph_number}: {e}")
            continue

        if corrections:
            result.corrections.extend(corrections)
        else:
            result.unchanged += 1

    return result


def document_offset_map(paragraphs: Sequence[Paragraph]) -> Dict[int, Tuple[int, int]]:
    """
    Document-level [start, end) of each paragraph's original text.

    Paragraphs are laid end to end with no separator, in list order.
    """
    offsets: Dict[int, Tuple[int, int]] = {}
    position = 0
    for paragraph in paragraphs:
        length = len(paragraph.original_text)
        offsets[paragraph.paragraph_number] = (position, position + length)
        position += length
    return offsets


def paragraphs_from_records(records: List[Dict]) -> List[Paragraph]:
    """
    Build Paragraph records from decoded JSON paragraph objects.

    Raises:
        ValueError: if a required field is missing or has the wrong type
    """
    paragraphs = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise ValueError(f"Paragraph entry {index + 1} is not an object")
        label = record.get('paragraph_number', index + 1)
        for key in ('paragraph_number', 'word_native_para_id',
                    'original_text_no_markers', 'latest_edited_text'):
            if key not in record:
                raise ValueError(f"Paragraph {label}: missing field '{key}'")
        if not isinstance(record['paragraph_number'], int):
            raise ValueError(f"Paragraph {label}: paragraph_number must be an integer")
        for key in ('original_text_no_markers', 'latest_edited_text'):
            if not isinstance(record[key], str):
                raise ValueError(f"Paragraph {label}: '{key}' must be a string")
        paragraphs.append(Paragraph(
            paragraph_number=record['paragraph_number'],
            native_paragraph_id=str(record['word_native_para_id']),
            original_text=record['original_text_no_markers'],
            edited_text=record['latest_edited_text'],
            marked_text=record.get('input_with_markers') or '',
        ))
    return paragraphs
