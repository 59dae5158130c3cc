"""Text clean-up helpers for generated and extracted text."""

import re
from typing import List

_TAG_RE = re.compile(r'<[^>]*>')
_WS_RE = re.compile(r'\s+')
_CONTROL_RE = re.compile(r'[\x00-\x1f\x7f-\x9f]')
_PERIODS_RE = re.compile(r'\.{2,}')
_PUNCT_SPACE_RE = re.compile(r'([.,!?])(?=[A-Za-z])')
# a new block starts at a line beginning with "12." or "Question:"
_BLOCK_START_RE = re.compile(r'(?=^[ \t]*(?:\d+\.|question:))', re.IGNORECASE | re.MULTILINE)

_CHAR_MAP = str.maketrans({
    '\u2018': "'",
    '\u2019': "'",
    '\u201c': '"',
    '\u201d': '"',
    '\u2013': '-',
    '\u2014': '-',
})


def sanitize_text(text: str) -> str:
    """Normalize a single extracted string.

    Strips HTML-like tags and control characters, straightens curly quotes,
    maps en/em dashes to '-', collapses runs of periods, puts a space after
    sentence punctuation glued to a letter and collapses whitespace.
    Whitespace is collapsed last so the result is stable under a second pass.
    """
    if not text:
        return ''
    out = _TAG_RE.sub('', text)
    out = out.translate(_CHAR_MAP)
    out = _WS_RE.sub(' ', out)
    out = _CONTROL_RE.sub('', out)
    out = _PERIODS_RE.sub('.', out)
    out = _PUNCT_SPACE_RE.sub(r'\1 ', out)
    return _WS_RE.sub(' ', out).strip()


def split_into_blocks(text: str) -> List[str]:
    """Split a generated response into candidate question blocks.

    Boundaries are lines that start with a numeral-dot or `Question:`.
    Text before the first marker is kept as its own block, so a first
    question without a marker still gets parsed.
    """
    if not text:
        return []
    return [blk.strip() for blk in _BLOCK_START_RE.split(text) if blk.strip()]


def normalize_whitespace(text: str) -> str:
    """Collapse all whitespace runs into single spaces."""
    return _WS_RE.sub(' ', text or '').strip()


def word_count(text: str) -> int:
    return len(text.split()) if text else 0
