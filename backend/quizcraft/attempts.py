"""Quiz attempt lifecycle.

`AttemptStateMachine` moves one student's attempt through

    (no attempt) -> in-progress <-> paused -> completed

and computes the score exactly once, on submit. Persistence goes through
an `AttemptStore`; the SQL-backed implementation lives in
`repositories.SqlAttemptStore` and is expected to keep at most one
non-completed attempt per (quiz, student).

Time is kept in whole seconds. `remaining_time` is accurate as of
`last_tick_at`; `tick` moves it forward explicitly (used by
`AttemptTimer`) and `sync_clock` catches up with the wall clock (used by
request handlers). Reaching zero auto-submits.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Protocol, Sequence

from .errors import EligibilityError, InvalidTransitionError, NotFoundError, UnansweredQuestionsError
from .models import (
    ATTEMPT_COMPLETED,
    ATTEMPT_IN_PROGRESS,
    ATTEMPT_PAUSED,
    UNANSWERED,
    Question,
    Quiz,
    QuizAttempt,
    as_utc,
    utcnow,
)

logger = logging.getLogger("quizcraft.attempts")


class AttemptStore(Protocol):
    def find_quiz(self, quiz_id: int) -> Optional[Quiz]:
        ...

    def find_active_attempt(self, quiz_id: int, student_id: int) -> Optional[QuizAttempt]:
        ...

    def count_completed_attempts(self, quiz_id: int, student_id: int) -> int:
        ...

    def save_attempt(self, attempt: QuizAttempt) -> QuizAttempt:
        ...

    def list_questions(self, quiz_id: int) -> List[Question]:
        ...


def score_answers(answers: Sequence[int], correct_answers: Sequence[int]) -> float:
    """Percentage of questions answered correctly.

    Unanswered (-1) or missing slots count as wrong. No questions -> 0.0.
    """
    if not correct_answers:
        return 0.0
    correct = sum(
        1 for i, expected in enumerate(correct_answers)
        if i < len(answers) and answers[i] != UNANSWERED and answers[i] == expected
    )
    return correct / len(correct_answers) * 100


def first_unanswered(answers: Sequence[int]) -> int:
    """Index to resume at: the first unanswered slot, else 0."""
    for i, value in enumerate(answers):
        if value == UNANSWERED:
            return i
    return 0


def effective_max_attempts(quiz: Quiz) -> int:
    return max(1, quiz.max_attempts) if quiz.allow_retakes else 1


def check_eligibility(quiz: Quiz, completed_count: int) -> None:
    """Raise `EligibilityError` when the student may not start again."""
    limit = effective_max_attempts(quiz)
    if completed_count >= limit:
        if quiz.allow_retakes:
            raise EligibilityError(f"all {limit} attempts have been used")
        raise EligibilityError("quiz already completed and retakes are not allowed")


class AttemptStateMachine:
    """Transitions for quiz attempts backed by an `AttemptStore`."""

    def __init__(
        self,
        store: AttemptStore,
        clock: Callable[[], datetime] = utcnow,
        lock: Optional[threading.RLock] = None,
    ):
        self.store = store
        self.clock = clock
        self._lock = lock or threading.RLock()

    def _quiz(self, quiz_id: int) -> Quiz:
        quiz = self.store.find_quiz(quiz_id)
        if not quiz:
            raise NotFoundError(f"quiz not found: {quiz_id}")
        return quiz

    def start(self, quiz_id: int, student_id: int) -> QuizAttempt:
        """Start an attempt, or hand back the student's open one.

        A paused attempt is resumed and an in-progress attempt is reused;
        neither goes through the eligibility check. Otherwise a new attempt
        is created if the retake rules allow it.
        """
        with self._lock:
            quiz = self._quiz(quiz_id)
            if not quiz.is_published:
                raise InvalidTransitionError("quiz is not published")

            active = self.store.find_active_attempt(quiz_id, student_id)
            if active is not None:
                if active.status == ATTEMPT_PAUSED:
                    return self.resume(active)
                self.sync_clock(active)
                if active.status == ATTEMPT_IN_PROGRESS:
                    return active

            check_eligibility(quiz, self.store.count_completed_attempts(quiz_id, student_id))
            questions = self.store.list_questions(quiz_id)
            now = self.clock()
            attempt = QuizAttempt(
                quiz_id=quiz_id,
                student_id=student_id,
                answers=[UNANSWERED] * len(questions),
                time_spent=0,
                remaining_time=quiz.duration * 60,
                status=ATTEMPT_IN_PROGRESS,
                started_at=now,
                last_tick_at=now,
            )
            attempt = self.store.save_attempt(attempt)
            logger.info("attempt %s started (quiz=%s student=%s)", attempt.id, quiz_id, student_id)
            return attempt

    def answer(self, attempt: QuizAttempt, index: int, choice: int) -> QuizAttempt:
        """Record `choice` for question `index`; -1 clears the answer."""
        with self._lock:
            self.sync_clock(attempt)
            if attempt.status != ATTEMPT_IN_PROGRESS:
                raise InvalidTransitionError(f"cannot answer while attempt is {attempt.status}")
            if not 0 <= index < len(attempt.answers):
                raise ValueError(f"question index out of range: {index}")
            if choice != UNANSWERED and not 0 <= choice <= 3:
                raise ValueError("choice must be between 0 and 3, or -1 to clear")
            answers = list(attempt.answers)
            answers[index] = choice
            attempt.answers = answers
            return self.store.save_attempt(attempt)

    def pause(self, attempt: QuizAttempt) -> QuizAttempt:
        """Stop the clock and keep the remaining time for a later resume.

        If the time ran out before the pause request, the attempt is
        auto-submitted instead and returned completed.
        """
        with self._lock:
            if attempt.status != ATTEMPT_IN_PROGRESS:
                raise InvalidTransitionError(f"cannot pause while attempt is {attempt.status}")
            quiz = self._quiz(attempt.quiz_id)
            if not quiz.allow_pause:
                raise InvalidTransitionError("pausing is not allowed for this quiz")
            self.sync_clock(attempt)
            if attempt.status == ATTEMPT_COMPLETED:
                return attempt
            attempt.status = ATTEMPT_PAUSED
            attempt.last_tick_at = None
            logger.info("attempt %s paused with %ss left", attempt.id, attempt.remaining_time)
            return self.store.save_attempt(attempt)

    def resume(self, attempt: QuizAttempt) -> QuizAttempt:
        with self._lock:
            if attempt.status != ATTEMPT_PAUSED:
                raise InvalidTransitionError(f"cannot resume while attempt is {attempt.status}")
            attempt.status = ATTEMPT_IN_PROGRESS
            attempt.last_tick_at = self.clock()
            logger.info("attempt %s resumed with %ss left", attempt.id, attempt.remaining_time)
            return self.store.save_attempt(attempt)

    def tick(self, attempt: QuizAttempt, seconds: int = 1, at: Optional[datetime] = None) -> QuizAttempt:
        """Count `seconds` off the clock; auto-submit when it hits zero.

        Does nothing unless the attempt is in progress. An expiry is
        recorded at the instant the clock ran out, which may be earlier
        than `at` when the catch-up covers a long idle stretch.
        """
        with self._lock:
            if attempt.status != ATTEMPT_IN_PROGRESS or seconds <= 0:
                return attempt
            at = as_utc(at) or self.clock()
            remaining = attempt.remaining_time or 0
            if remaining <= seconds:
                last = as_utc(attempt.last_tick_at) or at
                expired_at = min(at, last + timedelta(seconds=remaining))
                attempt.remaining_time = 0
                attempt.last_tick_at = expired_at
                logger.info("attempt %s ran out of time", attempt.id)
                return self.submit(attempt, auto=True, at=expired_at)
            attempt.remaining_time = remaining - seconds
            attempt.last_tick_at = at
            return self.store.save_attempt(attempt)

    def sync_clock(self, attempt: QuizAttempt) -> QuizAttempt:
        """Apply the whole seconds elapsed since `last_tick_at`."""
        with self._lock:
            if attempt.status != ATTEMPT_IN_PROGRESS or attempt.last_tick_at is None:
                return attempt
            last = as_utc(attempt.last_tick_at)
            elapsed = int((self.clock() - last).total_seconds())
            if elapsed <= 0:
                return attempt
            return self.tick(attempt, elapsed, at=last + timedelta(seconds=elapsed))

    def submit(
        self,
        attempt: QuizAttempt,
        auto: bool = False,
        confirmed: bool = False,
        at: Optional[datetime] = None,
    ) -> QuizAttempt:
        """Finish the attempt and score it.

        A manual submit with unanswered questions raises
        `UnansweredQuestionsError` unless `confirmed` is set. `auto`
        submits (time ran out) never ask. `at` overrides the completion
        time, otherwise the clock is read.
        """
        with self._lock:
            if attempt.status != ATTEMPT_IN_PROGRESS:
                raise InvalidTransitionError(f"cannot submit while attempt is {attempt.status}")
            if not auto:
                self.sync_clock(attempt)
                if attempt.status == ATTEMPT_COMPLETED:
                    return attempt
                unanswered = [i for i, a in enumerate(attempt.answers) if a == UNANSWERED]
                if unanswered and not confirmed:
                    raise UnansweredQuestionsError(unanswered)
            return self._complete(attempt, at)

    def _complete(self, attempt: QuizAttempt, at: Optional[datetime] = None) -> QuizAttempt:
        questions = self.store.list_questions(attempt.quiz_id)
        now = as_utc(at) or self.clock()
        attempt.score = score_answers(attempt.answers, [q.correct_answer for q in questions])
        attempt.time_spent = max(0, int((now - as_utc(attempt.started_at)).total_seconds()))
        attempt.status = ATTEMPT_COMPLETED
        attempt.completed_at = now
        attempt.remaining_time = None
        attempt.last_tick_at = None
        logger.info("attempt %s completed with score %.1f", attempt.id, attempt.score)
        return self.store.save_attempt(attempt)


class AttemptTimer:
    """Per-session countdown that ticks an attempt once per `interval`.

    The timer stops by itself once the attempt is completed (calling
    `on_expire` if the countdown did it) and can be stopped early with
    `cancel()`.
    """

    def __init__(
        self,
        machine: AttemptStateMachine,
        attempt: QuizAttempt,
        interval: float = 1.0,
        on_expire: Optional[Callable[[QuizAttempt], None]] = None,
    ):
        self.machine = machine
        self.attempt = attempt
        self.interval = interval
        self.on_expire = on_expire
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "AttemptTimer":
        if self.running:
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        return self

    def cancel(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            if self.attempt.status == ATTEMPT_COMPLETED:
                return
            self.attempt = self.machine.tick(self.attempt, 1)
            if self.attempt.status == ATTEMPT_COMPLETED:
                if self.on_expire is not None:
                    self.on_expire(self.attempt)
                return
