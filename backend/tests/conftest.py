import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Point the app at a throwaway database before anything imports quizcraft.
_TMP_DIR = tempfile.mkdtemp(prefix="quizcraft-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'test.db'}"
os.environ.setdefault("ENV", "dev")
os.environ.setdefault("GENERATION_RETRY_DELAY_SECONDS", "0")

from quizcraft import models  # noqa: E402
from quizcraft.models import ATTEMPT_COMPLETED, Question, Quiz, QuizAttempt  # noqa: E402


VALID_BLOCK = """1. What is the powerhouse of the cell in eukaryotes?
A) Nucleus
B) Mitochondria
C) Ribosome
D) Golgi apparatus
Correct Answer: B
Explanation: Mitochondria produce most of the cell's ATP.
"""


def make_block(n: int, correct: str = "A") -> str:
    return (
        f"{n}. Which statement about topic number {n} is accurate?\n"
        f"A) First choice {n}\n"
        f"B) Second choice {n}\n"
        f"C) Third choice {n}\n"
        f"D) Fourth choice {n}\n"
        f"Correct Answer: {correct}\n"
        f"Explanation: Choice {correct} is the documented fact for topic {n}.\n"
    )


class FakeTextGenerator:
    """Replays canned responses; an Exception instance in the list is raised."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []

    def generate(self, prompt: str, system_prompt: str) -> str:
        self.calls.append((prompt, system_prompt))
        if not self.responses:
            return ""
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


class InMemoryAttemptStore:
    """`AttemptStore` backed by dicts, for state machine tests."""

    def __init__(self):
        self.quizzes = {}
        self.questions = {}
        self.attempts = {}
        self._next_id = 1

    def add_quiz(self, quiz: Quiz, correct_answers=(0, 1, 2)) -> Quiz:
        quiz.id = len(self.quizzes) + 1
        self.quizzes[quiz.id] = quiz
        self.questions[quiz.id] = [
            Question(
                id=i + 1,
                quiz_id=quiz.id,
                position=i,
                text=f"Question number {i + 1}?",
                options=["a", "b", "c", "d"],
                correct_answer=c,
            )
            for i, c in enumerate(correct_answers)
        ]
        return quiz

    def find_quiz(self, quiz_id):
        return self.quizzes.get(quiz_id)

    def find_active_attempt(self, quiz_id, student_id):
        for a in self.attempts.values():
            if a.quiz_id == quiz_id and a.student_id == student_id and a.status != ATTEMPT_COMPLETED:
                return a
        return None

    def count_completed_attempts(self, quiz_id, student_id):
        return sum(
            1 for a in self.attempts.values()
            if a.quiz_id == quiz_id and a.student_id == student_id and a.status == ATTEMPT_COMPLETED
        )

    def save_attempt(self, attempt: QuizAttempt) -> QuizAttempt:
        if attempt.id is None:
            attempt.id = self._next_id
            self._next_id += 1
        self.attempts[attempt.id] = attempt
        return attempt

    def list_questions(self, quiz_id):
        return list(self.questions.get(quiz_id, []))


class FakeClock:
    """Manually advanced clock for attempt timing."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def published_quiz(**overrides) -> Quiz:
    fields = dict(
        title="Cells",
        description="Cell biology basics",
        duration=10,
        questions_count=3,
        status=models.QUIZ_PUBLISHED,
        allow_retakes=False,
        allow_pause=False,
        max_attempts=1,
    )
    fields.update(overrides)
    return Quiz(**fields)


@pytest.fixture
def fake_generator():
    return FakeTextGenerator()


@pytest.fixture
def attempt_store():
    return InMemoryAttemptStore()


@pytest.fixture
def clock():
    return FakeClock()
