"""
Paragraph matching between a live document and the edited-document records.

Precedence, first hit wins:
    1. exact match on whitespace-collapsed text
    2. fuzzy word-overlap match (long paragraphs only)
    3. positional fallback on paragraph_number - 1 (map_paragraph only)
"""

from typing import List, Optional, Sequence, Tuple

from .common import (
    FUZZY_MATCH_THRESHOLD,
    FUZZY_MIN_WORDS,
    Paragraph,
    collapse_whitespace,
)


METHOD_EXACT = 'exact'
METHOD_FUZZY = 'fuzzy'
METHOD_POSITIONAL = 'positional'


def word_overlap(target_words: List[str], candidate_text: str) -> float:
    """
    Fraction of target words that occur, case-insensitively, as a substring
    of some word of the candidate text.
    """
    if not target_words:
        return 0.0
    candidate_words = [w.lower() for w in candidate_text.split()]
    if not candidate_words:
        return 0.0
    hits = 0
    for word in target_words:
        needle = word.lower()
        if any(needle in cw for cw in candidate_words):
            hits += 1
    return hits / len(target_words)


def match_paragraph(candidates: Sequence[Paragraph], target_text: str,
                    threshold: float = FUZZY_MATCH_THRESHOLD,
                    min_words: int = FUZZY_MIN_WORDS) -> Optional[Paragraph]:
    """Find the candidate whose original text corresponds to target_text"""
    paragraph, _ = _match_with_method(candidates, target_text, threshold, min_words)
    return paragraph


def _match_with_method(candidates: Sequence[Paragraph], target_text: str,
                       threshold: float, min_words: int) -> Tuple[Optional[Paragraph], Optional[str]]:
    target = collapse_whitespace(target_text)

    for candidate in candidates:
        if collapse_whitespace(candidate.original_text) == target:
            return candidate, METHOD_EXACT

    target_words = target.split()
    if len(target_words) > min_words:
        for candidate in candidates:
            if word_overlap(target_words, candidate.original_text) >= threshold:
                return candidate, METHOD_FUZZY

    return None, None


def map_paragraph(candidates: Sequence[Paragraph], target_text: str,
                  paragraph_number: int,
                  threshold: float = FUZZY_MATCH_THRESHOLD,
                  min_words: int = FUZZY_MIN_WORDS) -> Tuple[Optional[Paragraph], Optional[str]]:
    """
    Map one live paragraph to its source record.

    Blank live paragraphs would exact-match the first blank candidate
    anywhere in the document, so they only get the positional fallback.

    Returns:
        (paragraph, method) where method is exact | fuzzy | positional,
        or (None, None) when the paragraph stays unmapped.
    """
    if collapse_whitespace(target_text):
        paragraph, method = _match_with_method(candidates, target_text, threshold, min_words)
        if paragraph is not None:
            return paragraph, method

    index = paragraph_number - 1
    if 0 <= index < len(candidates):
        return candidates[index], METHOD_POSITIONAL

    return None, None
