"""Extraction of multiple-choice questions from generated text blocks.

Each block is expected to follow the generation template::

    Question: <text>
    A) <option>
    B) <option>
    C) <option>
    D) <option>
    Correct Answer: <0-3 or A-D>
    Explanation: <text>

Model output drifts from the template, so every field is extracted with a
list of fallback patterns tried in order. A block that cannot be read is
reported through `BlockResult.failure` instead of raising, so one bad
block never costs the rest of the batch.
"""

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from ..models import utcnow
from .text import sanitize_text

OPTION_LABELS = ('A', 'B', 'C', 'D')

# question text stops at the first option marker or line break
_Q_STOP = r'(?=[ \t]+Options:|[ \t]+A[).][ \t]|\n|\Z)'
_QUESTION_PATTERNS = [
    re.compile(r'(?i:question)\s*:\s*(.+?)' + _Q_STOP),
    re.compile(r'^\s*\d+\.\s*(.+?)' + _Q_STOP),
    re.compile(r'^\s*(.+?)' + _Q_STOP),
]

_OPTIONS_END = r'(?=\s*(?i:correct\s+answer|answer|explanation)\s*:|\s*\Z)'
_COMBINED_OPTIONS_RE = re.compile(
    r'(?:^[ \t]*|Options:\s*)A[).][ \t]*(.+?)\s+B[).][ \t]*(.+?)\s+C[).][ \t]*(.+?)\s+D[).][ \t]*(.+?)' + _OPTIONS_END,
    re.DOTALL | re.MULTILINE,
)

_ANSWER_PATTERNS = [
    re.compile(r'(?i:correct\s+answer)\s*:?\s*([0-3])\b'),
    re.compile(r'(?i:correct\s+answer)\s*:?\s*\(?([A-Da-d])\b'),
    re.compile(r'(?i:\banswer)\s*:\s*([0-3])\b'),
    re.compile(r'(?i:\banswer)\s*:\s*\(?([A-Da-d])\b'),
]

_EXPLANATION_PATTERNS = [
    re.compile(r'(?i:explanation)\s*:\s*(.+?)(?=\n\s*(?i:question)\s*:)', re.DOTALL),
    re.compile(r'(?i:explanation)\s*:\s*(.+)\Z', re.DOTALL),
]


@dataclass
class GeneratedQuestion:
    """A parsed question plus where it came from."""
    text: str
    options: List[str]
    correct_answer: int
    explanation: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    complexity: Optional[str] = None
    generated_at: datetime = field(default_factory=utcnow)
    generation_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'text': self.text,
            'options': list(self.options),
            'correct_answer': self.correct_answer,
            'explanation': self.explanation,
            'complexity': self.complexity,
            'generated_at': self.generated_at.isoformat(),
            'generation_seconds': self.generation_seconds,
        }


@dataclass
class BlockResult:
    """Outcome of parsing one block: a question or the reason it failed."""
    question: Optional[GeneratedQuestion] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.question is not None

    @classmethod
    def success(cls, question: GeneratedQuestion) -> 'BlockResult':
        return cls(question=question)

    @classmethod
    def failure(cls, error: str) -> 'BlockResult':
        return cls(error=error)


def extract_question_text(block: str) -> Optional[str]:
    for pattern in _QUESTION_PATTERNS:
        m = pattern.search(block)
        if m and m.group(1).strip():
            text = sanitize_text(m.group(1))
            if text:
                return text
    return None


def extract_options(block: str) -> Optional[List[str]]:
    """Return exactly four option strings or None.

    The combined A-D pattern is tried first; if it does not yield four
    non-empty options each label is looked up on its own line.
    """
    m = _COMBINED_OPTIONS_RE.search(block)
    if m:
        options = [sanitize_text(g) for g in m.groups()]
        if all(options):
            return options
    options = []
    for label in OPTION_LABELS:
        line = re.search(rf'^[ \t]*\(?{label}[).][ \t]*(.+)$', block, re.MULTILINE)
        if not line:
            break
        options.append(sanitize_text(line.group(1)))
    if len(options) == 4 and all(options):
        return options
    return None


def extract_correct_answer(block: str) -> Optional[int]:
    """Read the answer as a digit 0-3 or a letter A-D (A -> 0)."""
    for pattern in _ANSWER_PATTERNS:
        m = pattern.search(block)
        if m:
            value = m.group(1)
            if value.isdigit():
                return int(value)
            return ord(value.upper()) - ord('A')
    return None


def extract_explanation(block: str) -> Optional[str]:
    for pattern in _EXPLANATION_PATTERNS:
        m = pattern.search(block)
        if m:
            text = sanitize_text(m.group(1))
            if text:
                return text
    return None


def parse_question_block(block: str, complexity: Optional[str] = None) -> BlockResult:
    """Extract one question from `block`.

    Stages run in order (question, options, answer, explanation); the
    first stage that finds nothing decides the failure message.
    """
    text = extract_question_text(block)
    if text is None:
        return BlockResult.failure('question: could not extract question text')
    options = extract_options(block)
    if options is None:
        return BlockResult.failure('options: could not extract all 4 options')
    correct = extract_correct_answer(block)
    if correct is None:
        return BlockResult.failure('correct answer: could not extract correct answer')
    explanation = extract_explanation(block)
    if explanation is None:
        return BlockResult.failure('explanation: could not extract explanation')
    return BlockResult.success(GeneratedQuestion(
        text=text,
        options=options,
        correct_answer=correct,
        explanation=explanation,
        complexity=complexity,
    ))
