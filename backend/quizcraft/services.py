"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
the generation pipeline and the attempt state machine. Services are
intentionally thin: they check ownership and access rules, call into the
domain modules and persist aggregates via repositories. They raise the
exceptions from `errors` (or `ValueError` for bad input); `main.py` turns
those into HTTP responses.
"""

import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Tuple

import jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from . import models, repositories
from .attempts import AttemptStateMachine, first_unanswered
from .config import settings
from .errors import EligibilityError, InvalidTransitionError, NotFoundError
from .generation import GenerationConfig, QuestionGenerator, summarize_document
from .schemas import GenerateIn, QuestionIn, QuizIn
from .utils.documents import extract_document_text
from .utils.text import sanitize_text, word_count
from .utils.validation import validate_question_or_raise

logger = logging.getLogger("quizcraft.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = settings.JWT_ALGORITHM
JWT_EXPIRE_HOURS = settings.JWT_EXPIRE_HOURS

# Attempt transitions from every request share one lock.
_ATTEMPT_LOCK = threading.RLock()


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, email: str, name: str, password: str, role: str = models.ROLE_STUDENT) -> models.User:
        """Create a new user with a hashed password.

        Raises `ValueError` if the email is already registered.
        """
        email = email.strip().lower()
        if self.user_repo.get_by_email(email):
            raise ValueError('email already registered')
        if role not in (models.ROLE_ADMIN, models.ROLE_STUDENT):
            raise ValueError(f'unknown role: {role}')
        hashed = PWD_CTX.hash(password)
        user = models.User(email=email, name=name.strip(), password_hash=hashed, role=role)
        user = self.user_repo.create(user)
        logger.info("registered %s user %s", role, user.id)
        return user

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_email(email.strip().lower())
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        expire = models.utcnow() + timedelta(hours=JWT_EXPIRE_HOURS)
        payload = {'user_id': user.id, 'role': user.role, 'exp': expire}
        return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def _question_from_input(q: QuestionIn) -> models.Question:
    question = models.Question(
        text=sanitize_text(q.text),
        options=[sanitize_text(o) for o in q.options],
        correct_answer=q.correct_answer,
        explanation=sanitize_text(q.explanation) if q.explanation else None,
    )
    validate_question_or_raise(question, require_explanation=False)
    return question


class QuizService:
    """Authoring operations on quizzes and their questions."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.q_repo = repositories.QuestionRepository(session)
        self.assign_repo = repositories.AssignmentRepository(session)

    def get(self, quiz_id: int) -> models.Quiz:
        quiz = self.quiz_repo.get(quiz_id)
        if not quiz:
            raise NotFoundError(f'quiz not found: {quiz_id}')
        return quiz

    def get_for_user(self, quiz_id: int, user: models.User) -> models.Quiz:
        """Admins see any quiz; students only published quizzes assigned to them."""
        quiz = self.get(quiz_id)
        if user.role != models.ROLE_ADMIN:
            if not quiz.is_published or not self.assign_repo.get(quiz_id, user.id):
                raise NotFoundError(f'quiz not found: {quiz_id}')
        return quiz

    def get_draft(self, quiz_id: int) -> models.Quiz:
        quiz = self.get(quiz_id)
        if quiz.is_published:
            raise InvalidTransitionError('published quizzes cannot be changed')
        return quiz

    def list_for_user(self, user: models.User) -> List[models.Quiz]:
        if user.role == models.ROLE_ADMIN:
            return self.quiz_repo.list_all()
        return self.quiz_repo.list_published_for_student(user.id)

    def questions(self, quiz_id: int) -> List[models.Question]:
        return self.q_repo.list_for_quiz(quiz_id)

    def create(self, data: QuizIn, author: models.User) -> models.Quiz:
        """Create a draft quiz, validating any authored questions first."""
        questions = [_question_from_input(q) for q in (data.questions or [])]
        quiz = models.Quiz(author_id=author.id)
        self._apply(quiz, data)
        quiz = self.quiz_repo.save(quiz)
        if questions:
            self.q_repo.append(quiz.id, questions)
        logger.info("quiz %s created with %d questions", quiz.id, len(questions))
        return quiz

    def update(self, quiz_id: int, data: QuizIn) -> models.Quiz:
        """Update a draft. A `questions` list replaces the stored questions."""
        quiz = self.get_draft(quiz_id)
        questions = None
        if data.questions is not None:
            questions = [_question_from_input(q) for q in data.questions]
        self._apply(quiz, data)
        quiz.updated_at = models.utcnow()
        quiz = self.quiz_repo.save(quiz)
        if questions is not None:
            self.q_repo.replace(quiz.id, questions)
        return quiz

    def publish(self, quiz_id: int) -> models.Quiz:
        """Publish a draft; publishing an already published quiz is a no-op."""
        quiz = self.get(quiz_id)
        if quiz.is_published:
            return quiz
        if self.q_repo.count_for_quiz(quiz_id) == 0:
            raise InvalidTransitionError('cannot publish a quiz without questions')
        quiz.status = models.QUIZ_PUBLISHED
        quiz.updated_at = models.utcnow()
        logger.info("quiz %s published", quiz_id)
        return self.quiz_repo.save(quiz)

    def delete(self, quiz_id: int) -> None:
        quiz = self.get_draft(quiz_id)
        self.quiz_repo.delete(quiz)
        logger.info("quiz %s deleted", quiz_id)

    @staticmethod
    def _apply(quiz: models.Quiz, data: QuizIn) -> None:
        quiz.title = data.title.strip()
        quiz.description = data.description.strip()
        quiz.duration = data.duration
        quiz.questions_count = data.questions_count
        quiz.allow_retakes = data.allow_retakes
        quiz.allow_pause = data.allow_pause
        # without retakes there is exactly one attempt
        quiz.max_attempts = data.max_attempts if data.allow_retakes else 1


class DocumentService:
    """Store uploaded documents as extracted plain text."""
    def __init__(self, session: Session):
        self.session = session
        self.doc_repo = repositories.DocumentRepository(session)

    def upload(self, file_bytes: bytes, filename: str, user: models.User) -> models.Document:
        """Extract the text of `filename` and persist it.

        Raises `ValueError` for unsupported or empty documents.
        """
        extracted = extract_document_text(file_bytes, filename)
        document = models.Document(
            title=Path(filename).stem or filename,
            content=extracted.content,
            page_count=extracted.page_count,
            word_count=word_count(extracted.content),
            uploaded_by=user.id,
        )
        document = self.doc_repo.create(document)
        logger.info("document %s stored (%d words)", document.id, document.word_count)
        return document

    def get(self, document_id: int) -> models.Document:
        document = self.doc_repo.get(document_id)
        if not document:
            raise NotFoundError(f'document not found: {document_id}')
        return document


class GenerationService:
    """Run the question generation pipeline against a draft quiz."""
    def __init__(self, session: Session, generator: QuestionGenerator):
        self.session = session
        self.generator = generator
        self.quizzes = QuizService(session)
        self.documents = DocumentService(session)
        self.q_repo = repositories.QuestionRepository(session)

    def generate_for_quiz(self, quiz_id: int, data: GenerateIn) -> dict:
        """Generate questions and append the valid ones to the draft.

        Returns `{created, questions, errors}` where `errors` lists the
        rejected blocks of a partially successful batch.
        """
        quiz = self.quizzes.get_draft(quiz_id)
        if data.document_id is not None:
            content = self.documents.get(data.document_id).content
        elif data.content and data.content.strip():
            content = data.content
        else:
            raise ValueError('document_id or content is required')

        config = GenerationConfig(complexity=data.complexity, count=data.count, content=content)
        outcome = self.generator.run(config)
        rows = [
            models.Question(
                text=q.text,
                options=list(q.options),
                correct_answer=q.correct_answer,
                explanation=q.explanation,
                complexity=q.complexity,
            )
            for q in outcome.questions
        ]
        self.q_repo.append(quiz.id, rows)
        return {
            'created': len(rows),
            'questions': [q.to_dict() for q in outcome.questions],
            'errors': outcome.errors,
        }

    def summarize(self, document_id: int) -> dict:
        document = self.documents.get(document_id)
        return summarize_document(self.generator, document.content)


class AssignmentService:
    """Grant and revoke students' access to quizzes."""
    def __init__(self, session: Session):
        self.session = session
        self.quiz_repo = repositories.QuizRepository(session)
        self.user_repo = repositories.UserRepository(session)
        self.assign_repo = repositories.AssignmentRepository(session)

    def _student(self, student_id: int) -> models.User:
        student = self.user_repo.get(student_id)
        if not student or student.role != models.ROLE_STUDENT:
            raise NotFoundError(f'student not found: {student_id}')
        return student

    def assign(self, quiz_id: int, student_id: int) -> models.Assignment:
        if not self.quiz_repo.get(quiz_id):
            raise NotFoundError(f'quiz not found: {quiz_id}')
        self._student(student_id)
        return self.assign_repo.assign(quiz_id, student_id)

    def unassign(self, quiz_id: int, student_id: int) -> None:
        if not self.assign_repo.unassign(quiz_id, student_id):
            raise NotFoundError(f'assignment not found: quiz {quiz_id}, student {student_id}')

    def list_students(self) -> List[dict]:
        """Students with the ids of the quizzes assigned to them."""
        return [
            {
                'id': s.id,
                'email': s.email,
                'name': s.name,
                'assigned_quiz_ids': self.assign_repo.quiz_ids_for_student(s.id),
            }
            for s in self.user_repo.list_by_role(models.ROLE_STUDENT)
        ]


class AttemptService:
    """Student-facing attempt operations over `AttemptStateMachine`."""
    def __init__(self, session: Session, clock=models.utcnow):
        self.session = session
        self.store = repositories.SqlAttemptStore(session)
        self.machine = AttemptStateMachine(self.store, clock=clock, lock=_ATTEMPT_LOCK)
        self.assign_repo = repositories.AssignmentRepository(session)
        self.attempt_repo = repositories.AttemptRepository(session)

    def start(self, quiz_id: int, student: models.User) -> Tuple[models.QuizAttempt, int]:
        """Start, reuse or resume the student's attempt.

        Returns the attempt and the question index to resume at.
        """
        if not self.store.find_quiz(quiz_id):
            raise NotFoundError(f'quiz not found: {quiz_id}')
        if not self.assign_repo.get(quiz_id, student.id):
            raise EligibilityError('quiz is not assigned to this student')
        try:
            attempt = self.machine.start(quiz_id, student.id)
        except IntegrityError:
            # another request opened the attempt first
            self.session.rollback()
            attempt = self.machine.start(quiz_id, student.id)
        return attempt, first_unanswered(attempt.answers)

    def get(self, attempt_id: int, student: models.User) -> models.QuizAttempt:
        """Return the student's own attempt with its clock brought up to date."""
        attempt = self.attempt_repo.get(attempt_id)
        if not attempt or attempt.student_id != student.id:
            raise NotFoundError(f'attempt not found: {attempt_id}')
        return self.machine.sync_clock(attempt)

    def answer(self, attempt_id: int, student: models.User, index: int, choice: int) -> models.QuizAttempt:
        return self.machine.answer(self.get(attempt_id, student), index, choice)

    def pause(self, attempt_id: int, student: models.User) -> models.QuizAttempt:
        return self.machine.pause(self.get(attempt_id, student))

    def resume(self, attempt_id: int, student: models.User) -> models.QuizAttempt:
        return self.machine.resume(self.get(attempt_id, student))

    def submit(self, attempt_id: int, student: models.User, confirmed: bool = False) -> models.QuizAttempt:
        attempt = self.get(attempt_id, student)
        if attempt.status == models.ATTEMPT_COMPLETED:
            # the clock ran out while the submit was on its way
            return attempt
        return self.machine.submit(attempt, confirmed=confirmed)


class ResultsService:
    """Per-student results summaries."""
    def __init__(self, session: Session):
        self.session = session
        self.attempt_repo = repositories.AttemptRepository(session)
        self.quiz_repo = repositories.QuizRepository(session)

    def for_student(self, quiz_id: int, student_id: int) -> dict:
        """Completed attempts numbered in completion order plus latest/best/average."""
        if not self.quiz_repo.get(quiz_id):
            raise NotFoundError(f'quiz not found: {quiz_id}')
        attempts = self.attempt_repo.list_completed(quiz_id, student_id)
        scores = [a.score or 0.0 for a in attempts]
        return {
            'quiz_id': quiz_id,
            'student_id': student_id,
            'attempts': [
                {
                    'attempt_number': n,
                    'id': a.id,
                    'score': a.score,
                    'time_spent': a.time_spent,
                    'completed_at': models.as_utc(a.completed_at).isoformat() if a.completed_at else None,
                }
                for n, a in enumerate(attempts, start=1)
            ],
            'latest_score': scores[-1] if scores else None,
            'best_score': max(scores) if scores else None,
            'average_score': round(sum(scores) / len(scores), 2) if scores else None,
        }
