"""Exception types shared by the generation pipeline and the attempt flow.

Services raise these; the HTTP layer in `main.py` maps each family to a
status code. Plain `ValueError` is still used for malformed request input.
"""

from typing import List, Optional


class QuizCraftError(Exception):
    """Base class for domain errors."""


class NotFoundError(QuizCraftError):
    """A referenced quiz, attempt, document or user does not exist."""


class ValidationError(QuizCraftError):
    """A single generated question block failed extraction or validation."""


class GenerationError(QuizCraftError):
    """A generation batch produced no usable questions."""

    def __init__(self, message: str, causes: Optional[List[str]] = None):
        super().__init__(message)
        self.causes = list(causes or [])


class ServiceError(QuizCraftError):
    """The external text-generation service failed."""


class RateLimitError(ServiceError):
    """The text-generation service asked us to slow down."""


class InvalidKeyError(ServiceError):
    """The text-generation service rejected the configured API key."""


class EligibilityError(QuizCraftError):
    """A student may not start this quiz (attempts used up, or not assigned)."""


class InvalidTransitionError(QuizCraftError):
    """The requested attempt operation is not allowed in its current state."""


class UnansweredQuestionsError(InvalidTransitionError):
    """A manual submit left questions unanswered and was not confirmed."""

    def __init__(self, unanswered: List[int]):
        super().__init__(f"{len(unanswered)} question(s) unanswered; confirm to submit")
        self.unanswered = list(unanswered)
