import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from quizcraft import models, services
from quizcraft.database import create_db_and_tables, engine
from quizcraft.repositories import SqlAttemptStore

create_db_and_tables()


@pytest.fixture
def session():
    with Session(engine) as s:
        yield s


def _seed(session, **quiz_fields):
    student = models.User(
        email=f'student-{uuid.uuid4().hex[:10]}@example.com',
        name='Student',
        password_hash='x',
        role=models.ROLE_STUDENT,
    )
    quiz = models.Quiz(title='Cells', description='Basics', duration=10, status=models.QUIZ_PUBLISHED, **quiz_fields)
    session.add(student)
    session.add(quiz)
    session.commit()
    session.refresh(student)
    session.refresh(quiz)
    for i in range(3):
        session.add(models.Question(quiz_id=quiz.id, position=i, text=f'Question {i}?', options=['a', 'b', 'c', 'd'], correct_answer=i))
    session.add(models.Assignment(quiz_id=quiz.id, student_id=student.id))
    session.commit()
    return student, quiz


def _open_attempt(quiz, student, status=models.ATTEMPT_IN_PROGRESS):
    return models.QuizAttempt(
        quiz_id=quiz.id,
        student_id=student.id,
        answers=[-1, -1, -1],
        remaining_time=600,
        status=status,
        last_tick_at=models.utcnow(),
    )


def test_utcnow_is_timezone_aware():
    assert models.utcnow().utcoffset() == timedelta(0)


def test_second_open_attempt_is_rejected_by_index(session):
    student, quiz = _seed(session)
    session.add(_open_attempt(quiz, student))
    session.commit()

    session.add(_open_attempt(quiz, student, status=models.ATTEMPT_PAUSED))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_completed_attempts_do_not_count_against_index(session):
    student, quiz = _seed(session, allow_retakes=True, max_attempts=3)
    done = _open_attempt(quiz, student, status=models.ATTEMPT_COMPLETED)
    done.completed_at = models.utcnow()
    session.add(done)
    session.add(_open_attempt(quiz, student))
    session.commit()
    store = SqlAttemptStore(session)
    assert store.count_completed_attempts(quiz.id, student.id) == 1
    assert store.find_active_attempt(quiz.id, student.id).status == models.ATTEMPT_IN_PROGRESS


def test_sql_store_round_trip_keeps_clock_arithmetic_working(session):
    student, quiz = _seed(session, allow_pause=True)
    svc = services.AttemptService(session)
    attempt, resume_at = svc.start(quiz.id, student)
    assert resume_at == 0
    session.expire_all()

    reloaded = svc.get(attempt.id, student)
    assert reloaded.status == models.ATTEMPT_IN_PROGRESS
    done = svc.machine.submit(reloaded, confirmed=True)
    assert done.status == models.ATTEMPT_COMPLETED
    assert done.time_spent >= 0


def test_start_falls_back_to_existing_attempt_after_index_violation(session, monkeypatch):
    student, quiz = _seed(session, allow_pause=True)
    existing = _open_attempt(quiz, student, status=models.ATTEMPT_PAUSED)
    existing.remaining_time = 420
    existing.last_tick_at = None
    session.add(existing)
    session.commit()
    session.refresh(existing)

    svc = services.AttemptService(session)
    lookup = svc.store.find_active_attempt
    calls = []

    def miss_once(quiz_id, student_id):
        calls.append(quiz_id)
        if len(calls) == 1:
            return None
        return lookup(quiz_id, student_id)

    monkeypatch.setattr(svc.store, 'find_active_attempt', miss_once)

    attempt, _ = svc.start(quiz.id, student)
    assert len(calls) == 2
    assert attempt.id == existing.id
    assert attempt.status == models.ATTEMPT_IN_PROGRESS
    assert attempt.remaining_time == 420
    assert svc.store.count_completed_attempts(quiz.id, student.id) == 0
