"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table; list-valued fields (question options,
attempt answers) are stored as JSON columns.
"""

from typing import List, Optional
from sqlalchemy import JSON, Column, Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"

QUIZ_DRAFT = "draft"
QUIZ_PUBLISHED = "published"

ATTEMPT_IN_PROGRESS = "in-progress"
ATTEMPT_PAUSED = "paused"
ATTEMPT_COMPLETED = "completed"

UNANSWERED = -1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands timestamps back without tzinfo; they were stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: `admin` or `student`
    """
    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, nullable=False)
    name: str
    password_hash: str
    role: str = Field(default=ROLE_STUDENT)
    created_at: datetime = Field(default_factory=utcnow)


class Document(SQLModel, table=True):
    """Uploaded source material; `content` is the extracted plain text."""
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    content: str
    page_count: Optional[int] = None
    word_count: int = 0
    uploaded_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)


class Quiz(SQLModel, table=True):
    """A named, timed assessment.

    `duration` is in minutes. `questions_count` is the authoring target and
    may exceed the number of stored questions while the quiz is a draft.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: str
    duration: int
    questions_count: int = 1
    status: str = Field(default=QUIZ_DRAFT, index=True)
    allow_retakes: bool = False
    allow_pause: bool = False
    max_attempts: int = 1
    author_id: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_published(self) -> bool:
        return self.status == QUIZ_PUBLISHED


class Question(SQLModel, table=True):
    """A four-option multiple-choice question belonging to a quiz."""
    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    position: int = 0
    text: str
    options: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    correct_answer: int
    explanation: Optional[str] = None
    complexity: Optional[str] = None


class Assignment(SQLModel, table=True):
    """Grants a student access to a quiz."""
    __table_args__ = (UniqueConstraint("quiz_id", "student_id", name="uq_assignment_quiz_student"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    assigned_at: datetime = Field(default_factory=utcnow)


class QuizAttempt(SQLModel, table=True):
    """One student's run through a quiz.

    `answers` holds one slot per question with `-1` for unanswered.
    `remaining_time` is the countdown in seconds as of `last_tick_at`;
    it is cleared on completion. The partial unique index keeps at most one
    non-completed attempt per (quiz, student).
    """
    __table_args__ = (
        Index(
            "uq_attempt_active",
            "quiz_id",
            "student_id",
            unique=True,
            sqlite_where=text("status != 'completed'"),
            postgresql_where=text("status != 'completed'"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    quiz_id: int = Field(foreign_key="quiz.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    answers: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    score: Optional[float] = None
    time_spent: int = 0
    remaining_time: Optional[int] = None
    status: str = Field(default=ATTEMPT_IN_PROGRESS)
    started_at: datetime = Field(default_factory=utcnow)
    last_tick_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
