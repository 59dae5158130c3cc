import threading
from datetime import timedelta

import pytest

from conftest import published_quiz
from quizcraft import models
from quizcraft.attempts import (
    AttemptStateMachine,
    AttemptTimer,
    effective_max_attempts,
    first_unanswered,
    score_answers,
)
from quizcraft.errors import EligibilityError, InvalidTransitionError, NotFoundError, UnansweredQuestionsError


def _machine(store, clock, **quiz_overrides):
    quiz = store.add_quiz(published_quiz(**quiz_overrides))
    return AttemptStateMachine(store, clock=clock), quiz


def test_score_answers():
    assert score_answers([0, 1, 2], [0, 1, 2]) == 100.0
    assert score_answers([0, -1, 3], [0, 1, 2]) == pytest.approx(100 / 3)
    assert score_answers([1, 1], [0, 1, 2]) == pytest.approx(100 / 3)
    assert score_answers([], []) == 0.0
    key = [1, 0, 2, 3]
    assert score_answers([1, 0, 2, 3], key) == 100.0
    assert score_answers([1, 1, 2, 3], key) == 75.0
    assert score_answers([-1, -1, -1, -1], key) == 0.0


def test_first_unanswered():
    assert first_unanswered([0, -1, -1]) == 1
    assert first_unanswered([2, 1]) == 0
    assert first_unanswered([]) == 0


def test_effective_max_attempts():
    assert effective_max_attempts(published_quiz(allow_retakes=False, max_attempts=5)) == 1
    assert effective_max_attempts(published_quiz(allow_retakes=True, max_attempts=3)) == 3


def test_start_creates_timed_attempt(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, student_id=7)
    assert attempt.status == models.ATTEMPT_IN_PROGRESS
    assert attempt.answers == [-1, -1, -1]
    assert attempt.remaining_time == quiz.duration * 60
    assert attempt.started_at == clock.now


def test_start_reuses_open_attempt(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    first = machine.start(quiz.id, 7)
    clock.advance(5)
    second = machine.start(quiz.id, 7)
    assert second.id == first.id
    assert second.remaining_time == 595
    assert len(attempt_store.attempts) == 1


def test_start_requires_published_quiz(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, status=models.QUIZ_DRAFT)
    with pytest.raises(InvalidTransitionError):
        machine.start(quiz.id, 7)
    with pytest.raises(NotFoundError):
        machine.start(999, 7)


def test_manual_submit_needs_confirmation_when_unanswered(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, 7)
    machine.answer(attempt, 0, 0)
    with pytest.raises(UnansweredQuestionsError) as exc:
        machine.submit(attempt)
    assert exc.value.unanswered == [1, 2]
    assert attempt.status == models.ATTEMPT_IN_PROGRESS

    clock.advance(45)
    done = machine.submit(attempt, confirmed=True)
    assert done.status == models.ATTEMPT_COMPLETED
    assert done.score == pytest.approx(100 / 3)
    assert done.time_spent == 45
    assert done.remaining_time is None
    assert done.completed_at == clock.now


def test_answer_rules(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, 7)
    machine.answer(attempt, 2, 3)
    machine.answer(attempt, 2, -1)
    assert attempt.answers == [-1, -1, -1]
    with pytest.raises(ValueError):
        machine.answer(attempt, 3, 0)
    with pytest.raises(ValueError):
        machine.answer(attempt, 0, 4)
    for i, c in enumerate([0, 1, 2]):
        machine.answer(attempt, i, c)
    machine.submit(attempt)
    assert attempt.score == 100.0
    with pytest.raises(InvalidTransitionError):
        machine.answer(attempt, 0, 1)
    with pytest.raises(InvalidTransitionError):
        machine.submit(attempt)


def test_no_retakes_blocks_second_attempt(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    machine.submit(machine.start(quiz.id, 7), confirmed=True)
    with pytest.raises(EligibilityError):
        machine.start(quiz.id, 7)
    # other students are unaffected
    assert machine.start(quiz.id, 8).status == models.ATTEMPT_IN_PROGRESS


def test_retakes_up_to_max_attempts(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, allow_retakes=True, max_attempts=2)
    first = machine.submit(machine.start(quiz.id, 7), confirmed=True)
    second = machine.submit(machine.start(quiz.id, 7), confirmed=True)
    assert first.id != second.id
    with pytest.raises(EligibilityError):
        machine.start(quiz.id, 7)


def test_three_attempts_allowed_then_refused(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, allow_retakes=True, max_attempts=3)
    for _ in range(2):
        machine.submit(machine.start(quiz.id, 7), confirmed=True)
    third = machine.start(quiz.id, 7)
    assert third.status == models.ATTEMPT_IN_PROGRESS
    machine.submit(third, confirmed=True)
    with pytest.raises(EligibilityError):
        machine.start(quiz.id, 7)


def test_pause_refused_without_state_change(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, allow_pause=False)
    attempt = machine.start(quiz.id, 7)
    clock.advance(10)
    with pytest.raises(InvalidTransitionError):
        machine.pause(attempt)
    assert attempt.status == models.ATTEMPT_IN_PROGRESS
    assert attempt.remaining_time == 600


def test_pause_freezes_clock_until_resume(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, allow_pause=True)
    attempt = machine.start(quiz.id, 7)
    clock.advance(30)
    machine.pause(attempt)
    assert attempt.status == models.ATTEMPT_PAUSED
    assert attempt.remaining_time == 570

    clock.advance(300)
    machine.sync_clock(attempt)
    assert attempt.remaining_time == 570
    with pytest.raises(InvalidTransitionError):
        machine.pause(attempt)
    with pytest.raises(InvalidTransitionError):
        machine.submit(attempt)

    resumed = machine.start(quiz.id, 7)
    assert resumed.id == attempt.id
    assert resumed.status == models.ATTEMPT_IN_PROGRESS
    assert resumed.last_tick_at == clock.now
    assert resumed.remaining_time == 570
    with pytest.raises(InvalidTransitionError):
        machine.resume(resumed)


def test_clock_expiry_auto_submits(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, duration=1)
    attempt = machine.start(quiz.id, 7)
    machine.answer(attempt, 0, 0)
    clock.advance(61)
    machine.sync_clock(attempt)
    assert attempt.status == models.ATTEMPT_COMPLETED
    assert attempt.score == pytest.approx(100 / 3)
    assert attempt.remaining_time is None


def test_idle_expiry_is_stamped_when_time_ran_out(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, duration=10)
    attempt = machine.start(quiz.id, 7)
    started = clock.now
    clock.advance(7200)
    machine.sync_clock(attempt)
    assert attempt.status == models.ATTEMPT_COMPLETED
    assert attempt.time_spent == 600
    assert attempt.completed_at == started + timedelta(seconds=600)


def test_expiry_after_partial_use(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, duration=1)
    attempt = machine.start(quiz.id, 7)
    clock.advance(20)
    machine.sync_clock(attempt)
    assert attempt.remaining_time == 40
    clock.advance(500)
    machine.sync_clock(attempt)
    assert attempt.time_spent == 60


def test_pause_after_expiry_returns_completed(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock, duration=1, allow_pause=True)
    attempt = machine.start(quiz.id, 7)
    clock.advance(120)
    result = machine.pause(attempt)
    assert result.status == models.ATTEMPT_COMPLETED


def test_tick_counts_down(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, 7)
    machine.tick(attempt, 5)
    assert attempt.remaining_time == 595
    machine.tick(attempt, 0)
    assert attempt.remaining_time == 595
    machine.tick(attempt, 1000)
    assert attempt.status == models.ATTEMPT_COMPLETED


def test_timer_auto_submits_on_expiry(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, 7)
    attempt.remaining_time = 3
    expired = threading.Event()

    timer = AttemptTimer(machine, attempt, interval=0.01, on_expire=lambda a: expired.set())
    timer.start()
    assert expired.wait(2.0)
    timer.join(1.0)
    assert not timer.running
    assert attempt.status == models.ATTEMPT_COMPLETED


def test_timer_cancel_stops_ticking(attempt_store, clock):
    machine, quiz = _machine(attempt_store, clock)
    attempt = machine.start(quiz.id, 7)
    timer = AttemptTimer(machine, attempt, interval=0.05).start()
    timer.cancel()
    timer.join(1.0)
    assert not timer.running
    assert attempt.status == models.ATTEMPT_IN_PROGRESS
