"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the QuizCraft backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses. Domain errors raised by services are
mapped to status codes by the exception handlers below.

Endpoints implemented:
- POST /auth/register, POST /auth/login
- GET /students
- POST /documents, GET /documents/{id}, POST /documents/{id}/summary
- POST /quizzes, GET /quizzes, GET|PUT|DELETE /quizzes/{id}
- POST /quizzes/{id}/publish, POST /quizzes/{id}/generate
- POST /quizzes/{id}/assignments, DELETE /quizzes/{id}/assignments/{student_id}
- POST /quizzes/{id}/attempts, GET /quizzes/{id}/results
- GET /attempts/{id}, POST /attempts/{id}/answers|pause|resume|submit
"""

from fastapi import FastAPI, Depends, UploadFile, File, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from typing import List, Optional
from .database import create_db_and_tables, get_session
from . import services, models
from .auth import get_current_user, require_role
from .config import settings
from .errors import (
    EligibilityError,
    GenerationError,
    InvalidKeyError,
    InvalidTransitionError,
    NotFoundError,
    RateLimitError,
    ServiceError,
    UnansweredQuestionsError,
    ValidationError,
)
from .generation import QuestionGenerator
from .schemas import AnswerIn, AssignIn, GenerateIn, LoginIn, QuizIn, RegisterIn, SubmitIn, TokenOut
from .utils.llm_client import OpenAIClient, TextGenerator
from .utils.rate_limit import SlidingWindowLimiter

app = FastAPI(title="QuizCraft API")
logger = logging.getLogger("quizcraft.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)
_generate_rate_limiter = SlidingWindowLimiter(
    settings.GENERATE_RATE_LIMIT_PER_WINDOW,
    settings.GENERATE_RATE_LIMIT_WINDOW_SECONDS,
)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    context = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "client": request.client.host if request.client else "unknown",
    }
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception("request_failed %s", json.dumps(context, ensure_ascii=True))
        raise
    response.headers["X-Request-ID"] = req_id
    context["status_code"] = response.status_code
    context["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info("request_done %s", json.dumps(context, ensure_ascii=True))
    return response


def _error(status_code: int, detail: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


@app.exception_handler(NotFoundError)
def _not_found(request: Request, exc: NotFoundError):
    return _error(404, str(exc))


@app.exception_handler(EligibilityError)
def _not_eligible(request: Request, exc: EligibilityError):
    return _error(403, str(exc))


@app.exception_handler(UnansweredQuestionsError)
def _unanswered(request: Request, exc: UnansweredQuestionsError):
    return _error(409, str(exc), unanswered=exc.unanswered)


@app.exception_handler(InvalidTransitionError)
def _invalid_transition(request: Request, exc: InvalidTransitionError):
    return _error(409, str(exc))


@app.exception_handler(GenerationError)
def _generation_failed(request: Request, exc: GenerationError):
    return _error(422, str(exc), causes=exc.causes)


@app.exception_handler(RateLimitError)
def _service_rate_limited(request: Request, exc: RateLimitError):
    return _error(429, f"generation service rate limited: {exc}")


@app.exception_handler(InvalidKeyError)
def _invalid_key(request: Request, exc: InvalidKeyError):
    logger.error("generation service rejected the API key: %s", exc)
    return _error(502, "generation service rejected the API key")


@app.exception_handler(ServiceError)
def _service_failed(request: Request, exc: ServiceError):
    logger.error("generation service failed: %s", exc)
    return _error(502, f"generation service failed: {exc}")


@app.exception_handler(ValidationError)
def _invalid_question(request: Request, exc: ValidationError):
    return _error(400, str(exc))


@app.exception_handler(ValueError)
def _bad_input(request: Request, exc: ValueError):
    return _error(400, str(exc))


def get_text_generator() -> TextGenerator:
    """The text-generation service client; overridden in tests."""
    return OpenAIClient()


def get_question_generator(client: TextGenerator = Depends(get_text_generator)) -> QuestionGenerator:
    return QuestionGenerator(client)


def _enforce_generate_rate_limit(user: models.User) -> None:
    allowed, retry_after = _generate_rate_limiter.allow(f"generate:{user.id}")
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _validate_upload_filename(filename: str) -> None:
    if not filename or len(filename) > 200:
        raise HTTPException(status_code=400, detail="invalid filename")
    if "/" in filename or "\\" in filename:
        raise HTTPException(status_code=400, detail="invalid filename path")


def _user_out(user: models.User) -> dict:
    return {'id': user.id, 'email': user.email, 'name': user.name, 'role': user.role}


def _iso(value) -> Optional[str]:
    return models.as_utc(value).isoformat() if value else None


def _question_out(q: models.Question, include_answer: bool) -> dict:
    out = {'id': q.id, 'position': q.position, 'text': q.text, 'options': list(q.options), 'complexity': q.complexity}
    if include_answer:
        out['correct_answer'] = q.correct_answer
        out['explanation'] = q.explanation
    return out


def _quiz_out(quiz: models.Quiz, questions: Optional[List[models.Question]] = None, include_answers: bool = False) -> dict:
    out = {
        'id': quiz.id,
        'title': quiz.title,
        'description': quiz.description,
        'duration': quiz.duration,
        'questions_count': quiz.questions_count,
        'status': quiz.status,
        'settings': {
            'allow_retakes': quiz.allow_retakes,
            'allow_pause': quiz.allow_pause,
            'max_attempts': quiz.max_attempts,
        },
        'created_at': _iso(quiz.created_at),
        'updated_at': _iso(quiz.updated_at),
    }
    if questions is not None:
        out['questions'] = [_question_out(q, include_answers) for q in questions]
    return out


def _attempt_out(attempt: models.QuizAttempt, questions: List[models.Question]) -> dict:
    """Attempt state; correct answers are only revealed once it is completed."""
    completed = attempt.status == models.ATTEMPT_COMPLETED
    out = {
        'id': attempt.id,
        'quiz_id': attempt.quiz_id,
        'status': attempt.status,
        'answers': list(attempt.answers),
        'remaining_time': attempt.remaining_time,
        'time_spent': attempt.time_spent,
        'score': attempt.score,
        'started_at': _iso(attempt.started_at),
        'completed_at': _iso(attempt.completed_at),
        'questions': [_question_out(q, include_answer=completed) for q in questions],
    }
    if completed:
        out['review'] = [
            {
                'index': i,
                'selected': attempt.answers[i] if i < len(attempt.answers) else models.UNANSWERED,
                'correct_answer': q.correct_answer,
                'is_correct': i < len(attempt.answers) and attempt.answers[i] == q.correct_answer,
            }
            for i, q in enumerate(questions)
        ]
    return out


@app.post('/auth/register')
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    """Register a new admin or student account.

    A duplicate email is rejected with 400.
    """
    user = services.AuthService(db).register(payload.email, payload.name, payload.password, payload.role)
    return _user_out(user)


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    """Authenticate a user and return a JWT carrying `user_id` and `role`."""
    token = services.AuthService(db).authenticate(payload.email, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return TokenOut(access_token=token)


@app.get('/students')
def list_students(db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    """All students with the ids of their assigned quizzes."""
    return services.AssignmentService(db).list_students()


@app.post('/documents')
def upload_document(file: UploadFile = File(...), db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    """Upload a PDF, DOCX or TXT file and store its extracted text."""
    _validate_upload_filename(file.filename)
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    doc = services.DocumentService(db).upload(content, file.filename, user)
    return {
        'id': doc.id,
        'title': doc.title,
        'page_count': doc.page_count,
        'word_count': doc.word_count,
    }


@app.get('/documents/{document_id}')
def get_document(document_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    doc = services.DocumentService(db).get(document_id)
    return {
        'id': doc.id,
        'title': doc.title,
        'content': doc.content,
        'page_count': doc.page_count,
        'word_count': doc.word_count,
        'created_at': _iso(doc.created_at),
    }


@app.post('/documents/{document_id}/summary')
def summarize_document(
    document_id: int,
    db: Session = Depends(get_session),
    user: models.User = Depends(require_role(models.ROLE_ADMIN)),
    generator: QuestionGenerator = Depends(get_question_generator),
):
    """Ask the generation service for a summary of a stored document."""
    _enforce_generate_rate_limit(user)
    return services.GenerationService(db, generator).summarize(document_id)


@app.post('/quizzes')
def create_quiz(payload: QuizIn, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    svc = services.QuizService(db)
    quiz = svc.create(payload, user)
    return _quiz_out(quiz, svc.questions(quiz.id), include_answers=True)


@app.get('/quizzes')
def list_quizzes(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Admins see every quiz; students see published quizzes assigned to them."""
    return [_quiz_out(q) for q in services.QuizService(db).list_for_user(user)]


@app.get('/quizzes/{quiz_id}')
def get_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.QuizService(db)
    quiz = svc.get_for_user(quiz_id, user)
    return _quiz_out(quiz, svc.questions(quiz.id), include_answers=user.role == models.ROLE_ADMIN)


@app.put('/quizzes/{quiz_id}')
def update_quiz(quiz_id: int, payload: QuizIn, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    """Update a draft quiz; published quizzes answer 409."""
    svc = services.QuizService(db)
    quiz = svc.update(quiz_id, payload)
    return _quiz_out(quiz, svc.questions(quiz.id), include_answers=True)


@app.post('/quizzes/{quiz_id}/publish')
def publish_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    return _quiz_out(services.QuizService(db).publish(quiz_id))


@app.delete('/quizzes/{quiz_id}')
def delete_quiz(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    services.QuizService(db).delete(quiz_id)
    return {'status': 'ok'}


@app.post('/quizzes/{quiz_id}/generate')
def generate_questions(
    quiz_id: int,
    payload: GenerateIn,
    db: Session = Depends(get_session),
    user: models.User = Depends(require_role(models.ROLE_ADMIN)),
    generator: QuestionGenerator = Depends(get_question_generator),
):
    """Generate questions for a draft from a document or raw content.

    Valid questions are appended to the quiz. The response lists the
    rejected blocks in `errors` when only part of the batch survived.
    """
    _enforce_generate_rate_limit(user)
    return services.GenerationService(db, generator).generate_for_quiz(quiz_id, payload)


@app.post('/quizzes/{quiz_id}/assignments')
def assign_quiz(quiz_id: int, payload: AssignIn, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    a = services.AssignmentService(db).assign(quiz_id, payload.student_id)
    return {'quiz_id': a.quiz_id, 'student_id': a.student_id, 'assigned_at': _iso(a.assigned_at)}


@app.delete('/quizzes/{quiz_id}/assignments/{student_id}')
def unassign_quiz(quiz_id: int, student_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_ADMIN))):
    services.AssignmentService(db).unassign(quiz_id, student_id)
    return {'status': 'ok'}


@app.post('/quizzes/{quiz_id}/attempts')
def start_attempt(quiz_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    """Start a new attempt, or continue the student's open one.

    `resume_index` is the first unanswered question (0 when none are).
    """
    attempt, resume_index = services.AttemptService(db).start(quiz_id, user)
    out = _attempt_out(attempt, services.QuizService(db).questions(quiz_id))
    out['resume_index'] = resume_index
    return out


@app.get('/quizzes/{quiz_id}/results')
def quiz_results(quiz_id: int, student_id: Optional[int] = None, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Completed attempts with latest, best and average score.

    Students always get their own results; admins pass `student_id`.
    """
    if user.role == models.ROLE_ADMIN:
        if student_id is None:
            raise HTTPException(status_code=400, detail='student_id is required')
        target = student_id
    else:
        target = user.id
    return services.ResultsService(db).for_student(quiz_id, target)


def _attempt_response(db: Session, attempt: models.QuizAttempt) -> dict:
    return _attempt_out(attempt, services.QuizService(db).questions(attempt.quiz_id))


@app.get('/attempts/{attempt_id}')
def get_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    return _attempt_response(db, services.AttemptService(db).get(attempt_id, user))


@app.post('/attempts/{attempt_id}/answers')
def answer_question(attempt_id: int, payload: AnswerIn, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    attempt = services.AttemptService(db).answer(attempt_id, user, payload.index, payload.choice)
    return _attempt_response(db, attempt)


@app.post('/attempts/{attempt_id}/pause')
def pause_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    return _attempt_response(db, services.AttemptService(db).pause(attempt_id, user))


@app.post('/attempts/{attempt_id}/resume')
def resume_attempt(attempt_id: int, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    return _attempt_response(db, services.AttemptService(db).resume(attempt_id, user))


@app.post('/attempts/{attempt_id}/submit')
def submit_attempt(attempt_id: int, payload: SubmitIn, db: Session = Depends(get_session), user: models.User = Depends(require_role(models.ROLE_STUDENT))):
    """Finish and score the attempt.

    With unanswered questions the request answers 409 and lists them,
    unless `confirm` is true.
    """
    attempt = services.AttemptService(db).submit(attempt_id, user, confirmed=payload.confirm)
    return _attempt_response(db, attempt)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
