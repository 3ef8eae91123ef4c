"""
Student quiz endpoints: open quizzes, quiz details and starting an attempt
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from assessment.api.deps import get_client_ip, get_student_id, get_user_agent
from assessment.database import get_db
from assessment.models import Quiz
from assessment.schemas.attempt import AttemptStartResponse
from assessment.schemas.quiz import AvailableQuiz, QuizDetails
from assessment.services.attempt_state_machine import attempt_state_machine, remaining_seconds
from assessment.services.attempt_store import attempt_store
from assessment.services.catalog_service import catalog_service
from assessment.utils.clock import utcnow


router = APIRouter(prefix="/api/student/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


def _quiz_details(quiz: Quiz) -> dict:
    questions = quiz.questions or []
    total_marks = quiz.total_marks
    if not total_marks:
        total_marks = sum(float(q.marks or 0) for q in questions)

    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "subject": quiz.subject,
        "duration_minutes": quiz.duration_minutes,
        "total_questions": len(questions),
        "total_marks": float(total_marks or 0),
        "passing_marks": float(quiz.passing_marks or 0),
        "max_attempts": quiz.max_attempts,
        "start_time": quiz.start_time,
        "end_time": quiz.end_time,
    }


@router.get("/available", response_model=List[AvailableQuiz])
async def list_available_quizzes(
    student_id: UUID = Depends(get_student_id), db: Session = Depends(get_db)
):
    """
    Quizzes that are open right now, with the student's attempt usage
    """
    quizzes = catalog_service.list_open_quizzes(db, utcnow())
    usage = attempt_store.attempt_usage(db, student_id, [quiz.id for quiz in quizzes])

    available = []
    for quiz in quizzes:
        used = usage[quiz.id]
        available.append(AvailableQuiz(
            **_quiz_details(quiz),
            attempts_used=used["used"],
            attempts_remaining=max(0, quiz.max_attempts - used["used"]),
            active_attempt_id=used["active_attempt_id"],
            last_attempt_status=used["last_status"],
        ))

    return available


@router.get("/{quiz_id}", response_model=QuizDetails)
async def get_quiz(
    quiz_id: UUID,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """Quiz information (no questions until an attempt is started)"""
    quiz = catalog_service.get_quiz_by_id(db, quiz_id)
    catalog_service.ensure_available(quiz, utcnow())
    return QuizDetails(**_quiz_details(quiz))


@router.post("/{quiz_id}/start", response_model=AttemptStartResponse, status_code=201)
async def start_attempt(
    quiz_id: UUID,
    request: Request,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """
    Start a new attempt

    - One attempt in progress per student and quiz
    - Counts toward the quiz's max_attempts
    - Questions are frozen at start; edits to the quiz do not affect it
    """
    attempt = attempt_state_machine.start(
        db,
        student_id,
        quiz_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )

    return AttemptStartResponse(
        attempt_id=attempt.id,
        attempt_number=attempt.attempt_number,
        quiz_id=attempt.quiz_id,
        quiz_title=attempt.quiz_title,
        started_at=attempt.started_at,
        time_limit_seconds=attempt.duration_minutes * 60,
        remaining_seconds=remaining_seconds(attempt),
        questions=attempt_store.presented_questions(attempt),
    )
