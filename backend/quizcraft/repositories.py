"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
documents, quizzes, questions, assignments, attempts). Repositories
return SQLModel objects and perform commits/refreshes where appropriate.
"""

from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        stmt = select(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def list_by_role(self, role: str) -> List[models.User]:
        stmt = select(models.User).where(models.User.role == role).order_by(models.User.name)
        return self.session.exec(stmt).all()


class DocumentRepository:
    def __init__(self, session: Session):
        self.session = session

    def create(self, document: models.Document) -> models.Document:
        self.session.add(document)
        self.session.commit()
        self.session.refresh(document)
        return document

    def get(self, document_id: int) -> Optional[models.Document]:
        return self.session.get(models.Document, document_id)


class QuizRepository:
    """CRUD operations for `Quiz` rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, quiz: models.Quiz) -> models.Quiz:
        """Insert or update `quiz` and return the refreshed instance."""
        self.session.add(quiz)
        self.session.commit()
        self.session.refresh(quiz)
        return quiz

    def get(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.session.get(models.Quiz, quiz_id)

    def list_all(self) -> List[models.Quiz]:
        stmt = select(models.Quiz).order_by(models.Quiz.created_at.desc())
        return self.session.exec(stmt).all()

    def list_published_for_student(self, student_id: int) -> List[models.Quiz]:
        """Published quizzes that have been assigned to `student_id`."""
        stmt = (
            select(models.Quiz)
            .join(models.Assignment, models.Assignment.quiz_id == models.Quiz.id)
            .where(models.Assignment.student_id == student_id, models.Quiz.status == models.QUIZ_PUBLISHED)
            .order_by(models.Quiz.created_at.desc())
        )
        return self.session.exec(stmt).all()

    def delete(self, quiz: models.Quiz) -> None:
        """Delete a quiz together with its questions, attempts and assignments."""
        for model in (models.QuizAttempt, models.Question, models.Assignment):
            rows = self.session.exec(select(model).where(model.quiz_id == quiz.id)).all()
            for row in rows:
                self.session.delete(row)
        self.session.delete(quiz)
        self.session.commit()


class QuestionRepository:
    """Ordered question lists per quiz."""
    def __init__(self, session: Session):
        self.session = session

    def list_for_quiz(self, quiz_id: int) -> List[models.Question]:
        stmt = select(models.Question).where(models.Question.quiz_id == quiz_id).order_by(models.Question.position, models.Question.id)
        return self.session.exec(stmt).all()

    def count_for_quiz(self, quiz_id: int) -> int:
        stmt = select(func.count()).select_from(models.Question).where(models.Question.quiz_id == quiz_id)
        return self.session.exec(stmt).one()

    def append(self, quiz_id: int, questions: List[models.Question]) -> List[models.Question]:
        """Add `questions` after the quiz's existing ones, keeping their order."""
        start = self.count_for_quiz(quiz_id)
        for offset, q in enumerate(questions):
            q.quiz_id = quiz_id
            q.position = start + offset
            self.session.add(q)
        self.session.commit()
        for q in questions:
            self.session.refresh(q)
        return questions

    def replace(self, quiz_id: int, questions: List[models.Question]) -> List[models.Question]:
        """Drop every question of the quiz and store `questions` instead."""
        for old in self.list_for_quiz(quiz_id):
            self.session.delete(old)
        self.session.commit()
        return self.append(quiz_id, questions)


class AssignmentRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, quiz_id: int, student_id: int) -> Optional[models.Assignment]:
        stmt = select(models.Assignment).where(
            models.Assignment.quiz_id == quiz_id,
            models.Assignment.student_id == student_id,
        )
        return self.session.exec(stmt).first()

    def assign(self, quiz_id: int, student_id: int) -> models.Assignment:
        """Create the assignment unless it already exists (idempotent)."""
        existing = self.get(quiz_id, student_id)
        if existing:
            return existing
        assignment = models.Assignment(quiz_id=quiz_id, student_id=student_id)
        self.session.add(assignment)
        self.session.commit()
        self.session.refresh(assignment)
        return assignment

    def unassign(self, quiz_id: int, student_id: int) -> bool:
        existing = self.get(quiz_id, student_id)
        if not existing:
            return False
        self.session.delete(existing)
        self.session.commit()
        return True

    def quiz_ids_for_student(self, student_id: int) -> List[int]:
        stmt = select(models.Assignment.quiz_id).where(models.Assignment.student_id == student_id)
        return list(self.session.exec(stmt).all())


class AttemptRepository:
    """Queries over `QuizAttempt` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get(self, attempt_id: int) -> Optional[models.QuizAttempt]:
        return self.session.get(models.QuizAttempt, attempt_id)

    def find_active(self, quiz_id: int, student_id: int) -> Optional[models.QuizAttempt]:
        """Return the student's in-progress or paused attempt, if any."""
        stmt = select(models.QuizAttempt).where(
            models.QuizAttempt.quiz_id == quiz_id,
            models.QuizAttempt.student_id == student_id,
            models.QuizAttempt.status != models.ATTEMPT_COMPLETED,
        )
        return self.session.exec(stmt).first()

    def count_completed(self, quiz_id: int, student_id: int) -> int:
        stmt = select(func.count()).select_from(models.QuizAttempt).where(
            models.QuizAttempt.quiz_id == quiz_id,
            models.QuizAttempt.student_id == student_id,
            models.QuizAttempt.status == models.ATTEMPT_COMPLETED,
        )
        return self.session.exec(stmt).one()

    def list_completed(self, quiz_id: int, student_id: int) -> List[models.QuizAttempt]:
        """Completed attempts in the order they were finished."""
        stmt = select(models.QuizAttempt).where(
            models.QuizAttempt.quiz_id == quiz_id,
            models.QuizAttempt.student_id == student_id,
            models.QuizAttempt.status == models.ATTEMPT_COMPLETED,
        ).order_by(models.QuizAttempt.completed_at, models.QuizAttempt.id)
        return self.session.exec(stmt).all()

    def save(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        self.session.add(attempt)
        self.session.commit()
        self.session.refresh(attempt)
        return attempt


class SqlAttemptStore:
    """`attempts.AttemptStore` implemented over the repositories above.

    The partial unique index on `QuizAttempt` rejects a second open
    attempt for the same (quiz, student) at commit time.
    """
    def __init__(self, session: Session):
        self.quizzes = QuizRepository(session)
        self.questions = QuestionRepository(session)
        self.attempts = AttemptRepository(session)

    def find_quiz(self, quiz_id: int) -> Optional[models.Quiz]:
        return self.quizzes.get(quiz_id)

    def find_active_attempt(self, quiz_id: int, student_id: int) -> Optional[models.QuizAttempt]:
        return self.attempts.find_active(quiz_id, student_id)

    def count_completed_attempts(self, quiz_id: int, student_id: int) -> int:
        return self.attempts.count_completed(quiz_id, student_id)

    def save_attempt(self, attempt: models.QuizAttempt) -> models.QuizAttempt:
        return self.attempts.save(attempt)

    def list_questions(self, quiz_id: int) -> List[models.Question]:
        return self.questions.list_for_quiz(quiz_id)
