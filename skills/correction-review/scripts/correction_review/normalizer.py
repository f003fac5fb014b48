"""Markup stripping for edited paragraph text."""

import re


# Block/style tags and the whitespace after them: <{ch_head}> Title
STYLE_TAG_PATTERN = re.compile(r'<\{[^{}<>]+\}>\s*')

# Inline formatting tags: <[b]>, <[/b]>
FORMAT_TAG_PATTERN = re.compile(r'<\[/?[^\[\]<>]+\]>')

# Bare bracket annotations with an identifier name: [note], [/note]
# "[1]" or "[see above]" are ordinary text and stay.
BRACKET_TAG_PATTERN = re.compile(r'\[/?[A-Za-z_][\w-]*\]')

_TAG_PATTERNS = (STYLE_TAG_PATTERN, FORMAT_TAG_PATTERN, BRACKET_TAG_PATTERN)


def strip_markup_tags(text: str) -> str:
    """
    Remove all markup tags, repeating until none is left.

    Removing one tag can expose another (e.g. "<{<[b]>x}>"), so a single
    pass is not enough for idempotence. Whitespace other than the run
    following a style tag is left untouched.
    """
    if not text:
        return ''
    previous = None
    while previous != text:
        previous = text
        for pattern in _TAG_PATTERNS:
            text = pattern.sub('', text)
    return text


def normalize(text: str) -> str:
    """
    Produce clean, comparable text from edited text.

    Strips markup tags and trims leading/trailing whitespace. Internal
    whitespace is preserved so offsets computed against the result stay
    meaningful. normalize(normalize(x)) == normalize(x).

    Examples:
        "<{ch_head}> Dutch (Moroccan)" -> "Dutch (Moroccan)"
        "a <[i]>word<[/i]> here" -> "a word here"
    """
    return strip_markup_tags(text).strip()
