"""
Student attempt endpoints: answers, tab switches and submission
"""

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from assessment.api.deps import get_student_id
from assessment.database import get_db
from assessment.models import QuizAttempt, Result
from assessment.schemas.attempt import (
    AnswerSave,
    AnswerSaveResponse,
    AttemptDetail,
    AttemptSummary,
    SavedAnswer,
    SubmitRequest,
    TabSwitchResponse,
)
from assessment.schemas.result import ResultResponse, SubmitResponse
from assessment.services.attempt_state_machine import (
    SubmitOutcome,
    attempt_state_machine,
    remaining_seconds,
)
from assessment.services.attempt_store import attempt_store


router = APIRouter(prefix="/api/student/attempts", tags=["attempts"])
logger = logging.getLogger(__name__)


def submit_response(outcome: SubmitOutcome) -> SubmitResponse:
    attempt: QuizAttempt = outcome.attempt
    result: Result = outcome.result

    return SubmitResponse(
        attempt_id=attempt.id,
        status=attempt.status,
        submit_reason=attempt.submit_reason,
        score_display=f"{result.total_score:.1f}/{result.max_score:.1f}",
        already_evaluated=outcome.already_evaluated,
        result=ResultResponse.model_validate(result),
    )


@router.get("", response_model=List[AttemptSummary])
async def list_attempts(
    student_id: UUID = Depends(get_student_id), db: Session = Depends(get_db)
):
    """All of the student's attempts, newest first"""
    return attempt_store.list_attempts(db, student_id)


@router.get("/{attempt_id}", response_model=AttemptDetail)
async def get_attempt(
    attempt_id: UUID,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """
    Resume an attempt: questions, saved answers and the server-side remaining time
    """
    attempt = attempt_store.load_attempt(db, attempt_id, student_id)
    answers = attempt_store.get_answer_rows(db, attempt.id)

    summary = AttemptSummary.model_validate(attempt)
    return AttemptDetail(
        **summary.model_dump(),
        time_limit_seconds=attempt.duration_minutes * 60,
        remaining_seconds=remaining_seconds(attempt),
        questions=attempt_store.presented_questions(attempt),
        answers=[SavedAnswer.model_validate(row) for row in answers],
    )


@router.put("/{attempt_id}/answer", response_model=AnswerSaveResponse)
async def save_answer(
    attempt_id: UUID,
    payload: AnswerSave,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """
    Save one answer (auto-save)

    Saving the same question again overwrites the earlier answer. Once time is
    up the attempt is submitted and the answer is rejected.
    """
    tagged = attempt_state_machine.record_answer(
        db, attempt_id, payload.question_id, payload.answer, student_id=student_id
    )

    return AnswerSaveResponse(question_id=payload.question_id, answered=tagged is not None)


@router.post("/{attempt_id}/tab-switch", response_model=TabSwitchResponse)
async def record_tab_switch(
    attempt_id: UUID,
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """Record that the student left the quiz tab"""
    attempt = attempt_state_machine.record_tab_switch(db, attempt_id, student_id=student_id)
    return TabSwitchResponse(tab_switch_count=attempt.tab_switch_count)


@router.post("/{attempt_id}/submit", response_model=SubmitResponse)
async def submit_attempt(
    attempt_id: UUID,
    payload: Optional[SubmitRequest] = Body(None),
    student_id: UUID = Depends(get_student_id),
    db: Session = Depends(get_db)
):
    """
    Submit an attempt and get the result

    Grading runs synchronously; the submission time is capped at the deadline.
    """
    reason = payload.reason if payload else SubmitRequest().reason

    outcome = attempt_state_machine.submit(db, attempt_id, reason=reason, student_id=student_id)

    logger.info(
        f"Attempt {attempt_id} graded: {outcome.result.total_score}/{outcome.result.max_score}"
    )
    return submit_response(outcome)
