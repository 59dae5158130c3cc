"""Question generation pipeline.

Turns one raw response from the text-generation service into validated
`GeneratedQuestion` records:

1. split the response into blocks (`utils.text.split_into_blocks`)
2. extract fields per block (`utils.question_parser.parse_question_block`)
3. check the record rules (`utils.validation.validate_question`)
4. keep the valid records, collect a reason for every rejected block

A batch only fails when nothing survives. Calls to the service are retried
on rate limiting with a fixed delay; every other service error surfaces
immediately.
"""

import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from .config import settings
from .errors import GenerationError, RateLimitError
from .utils.llm_client import TextGenerator
from .utils.prompts import (
    COMPLEXITY_LEVELS,
    QUESTION_GENERATION_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_question_prompt,
    build_summary_prompt,
)
from .utils.question_parser import GeneratedQuestion, parse_question_block
from .utils.text import split_into_blocks, word_count
from .utils.validation import validate_question

logger = logging.getLogger("quizcraft.generation")


@dataclass
class GenerationConfig:
    """What to generate: `count` questions at `complexity` about `content`."""
    complexity: str
    count: int
    content: str

    def __post_init__(self):
        if self.complexity not in COMPLEXITY_LEVELS:
            raise ValueError(f"complexity must be one of {', '.join(COMPLEXITY_LEVELS)}")
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            raise ValueError("count must be a positive integer")
        if not self.content or not self.content.strip():
            raise ValueError("content must not be empty")


@dataclass
class ParseOutcome:
    questions: List[GeneratedQuestion] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def parse_generated_text(raw: str, complexity: Optional[str] = None) -> ParseOutcome:
    """Parse every block in `raw`; never raises for a bad block.

    Each rejected block contributes one message of the form
    ``block <n>: <reason>`` (1-based).
    """
    outcome = ParseOutcome()
    for idx, block in enumerate(split_into_blocks(raw), start=1):
        result = parse_question_block(block, complexity=complexity)
        if not result.ok:
            outcome.errors.append(f"block {idx}: {result.error}")
            continue
        problems = validate_question(result.question)
        if problems:
            outcome.errors.append(f"block {idx}: validation: {'; '.join(problems)}")
            continue
        outcome.questions.append(result.question)
    return outcome


class QuestionGenerator:
    """Generate questions through a `TextGenerator` collaborator."""

    def __init__(
        self,
        client: TextGenerator,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        content_limit: Optional[int] = None,
    ):
        self.client = client
        self.max_retries = settings.GENERATION_MAX_RETRIES if max_retries is None else max_retries
        self.retry_delay = settings.GENERATION_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay
        self.content_limit = content_limit or settings.GENERATION_CONTENT_LIMIT

    def call(self, prompt: str, system_prompt: str) -> str:
        """Call the service, retrying only on `RateLimitError`.

        After `max_retries` retries the last `RateLimitError` is re-raised.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type(RateLimitError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self.client.generate(prompt, system_prompt)

    def generate(self, config: GenerationConfig) -> List[GeneratedQuestion]:
        """Return between 1 and `config.count` validated questions.

        Raises `GenerationError` when the service returns nothing or when
        no block survives parsing and validation.
        """
        return self.run(config).questions

    def run(self, config: GenerationConfig) -> ParseOutcome:
        """Like `generate` but also returns the reasons for rejected blocks."""
        prompt = build_question_prompt(config.complexity, config.count, config.content, self.content_limit)
        started = time.perf_counter()
        raw = self.call(prompt, QUESTION_GENERATION_SYSTEM_PROMPT)
        elapsed = round(time.perf_counter() - started, 3)
        if not raw or not raw.strip():
            raise GenerationError("empty response")

        outcome = parse_generated_text(raw, complexity=config.complexity)
        for err in outcome.errors:
            logger.warning("discarded generated question %s", err)
        if not outcome.questions:
            raise GenerationError("no valid questions", causes=outcome.errors)

        questions = outcome.questions[:config.count]
        for q in questions:
            q.generation_seconds = elapsed
        logger.info(
            "generated %d/%d questions (complexity=%s, rejected=%d, %.2fs)",
            len(questions), config.count, config.complexity, len(outcome.errors), elapsed,
        )
        return ParseOutcome(questions=questions, errors=outcome.errors)


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def summarize_document(generator: QuestionGenerator, content: str) -> dict:
    """Ask the service for a JSON summary of `content`.

    Returns `title`, `summary`, `key_points`, `topic_areas` and the
    document's `word_count`.
    """
    raw = generator.call(build_summary_prompt(content, generator.content_limit), SUMMARY_SYSTEM_PROMPT)
    if not raw or not raw.strip():
        raise GenerationError("empty response")
    cleaned = _FENCE_RE.sub("", raw.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}") + 1
    try:
        data = json.loads(cleaned[start:end]) if start != -1 and end > 0 else None
    except json.JSONDecodeError as exc:
        raise GenerationError("invalid summary response", causes=[str(exc)]) from exc
    if not isinstance(data, dict):
        raise GenerationError("invalid summary response", causes=["no JSON object in response"])
    return {
        "title": data.get("title") or "",
        "summary": data.get("summary") or "",
        "key_points": list(data.get("keyPoints") or []),
        "topic_areas": list(data.get("topicAreas") or []),
        "word_count": word_count(content),
    }
