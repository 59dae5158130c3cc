"""Rule checks for multiple-choice question records."""

from typing import List

from ..errors import ValidationError

MIN_TEXT_LENGTH = 10
MIN_EXPLANATION_LENGTH = 10
OPTION_COUNT = 4


def validate_question(question, require_explanation: bool = True) -> List[str]:
    """Return every rule `question` breaks (empty list when valid).

    `question` may be any object exposing `text`, `options`,
    `correct_answer` and `explanation` attributes.
    """
    errors = []
    text = getattr(question, 'text', None)
    if not text or len(text) < MIN_TEXT_LENGTH:
        errors.append(f'Question text must be at least {MIN_TEXT_LENGTH} characters long')

    options = getattr(question, 'options', None)
    if not isinstance(options, (list, tuple)) or len(options) != OPTION_COUNT:
        errors.append(f'Question must have exactly {OPTION_COUNT} options')
    else:
        for i, opt in enumerate(options):
            if not opt or not str(opt).strip():
                errors.append(f'Option {i + 1} cannot be empty')
        if len(set(options)) != len(options):
            errors.append('All options must be unique')

    correct = getattr(question, 'correct_answer', None)
    if isinstance(correct, bool) or not isinstance(correct, int) or not 0 <= correct < OPTION_COUNT:
        errors.append(f'Correct answer must be a number between 0 and {OPTION_COUNT - 1}')

    explanation = getattr(question, 'explanation', None)
    if require_explanation or explanation:
        if not explanation or len(explanation) < MIN_EXPLANATION_LENGTH:
            errors.append(f'Explanation must be at least {MIN_EXPLANATION_LENGTH} characters long')
    return errors


def validate_question_or_raise(question, require_explanation: bool = True) -> None:
    """Raise `ValidationError` listing all violated rules, if any."""
    errors = validate_question(question, require_explanation=require_explanation)
    if errors:
        raise ValidationError('; '.join(errors))
