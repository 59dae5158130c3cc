"""Pydantic request schemas used by the API.

Schemas keep API input shapes stable and provide validation for
controller handlers and tests. Responses are plain dicts built in
`main.py`.
"""

from pydantic import BaseModel, Field
from typing import List, Literal, Optional


class RegisterIn(BaseModel):
    """Payload for user registration."""
    email: str = Field(min_length=3, max_length=254)
    name: str = Field(min_length=1, max_length=120)
    password: str = Field(min_length=6)
    role: Literal['admin', 'student'] = 'student'


class LoginIn(BaseModel):
    email: str
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str
    token_type: str = 'bearer'


class QuestionIn(BaseModel):
    """An authored question; checked by the record validator in the service."""
    text: str
    options: List[str]
    correct_answer: int
    explanation: Optional[str] = None


class QuizIn(BaseModel):
    """Create/update payload for a draft quiz.

    `questions=None` on update leaves the stored questions untouched; a
    list (even an empty one) replaces them.
    """
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    duration: int = Field(ge=1, description='minutes')
    questions_count: int = Field(default=1, ge=1)
    allow_retakes: bool = False
    allow_pause: bool = False
    max_attempts: int = Field(default=1, ge=1)
    questions: Optional[List[QuestionIn]] = None


class GenerateIn(BaseModel):
    """Generate questions from a stored document or from raw `content`."""
    complexity: Literal['lite', 'medium', 'expert'] = 'medium'
    count: int = Field(default=5, ge=1, le=50)
    document_id: Optional[int] = None
    content: Optional[str] = None


class AssignIn(BaseModel):
    student_id: int


class AnswerIn(BaseModel):
    """Select `choice` (0-3) for question `index`; -1 clears it."""
    index: int = Field(ge=0)
    choice: int = Field(ge=-1, le=3)


class SubmitIn(BaseModel):
    confirm: bool = False
