"""
Administrative attempt endpoints: void and re-evaluate
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from assessment.api.attempts import submit_response
from assessment.database import get_db
from assessment.schemas.attempt import AttemptSummary, VoidRequest
from assessment.schemas.result import SubmitResponse
from assessment.services.attempt_state_machine import attempt_state_machine


router = APIRouter(prefix="/api/admin/attempts", tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/{attempt_id}/void", response_model=AttemptSummary)
async def void_attempt(
    attempt_id: UUID, payload: VoidRequest, db: Session = Depends(get_db)
):
    """
    Invalidate an attempt

    The attempt keeps counting toward max_attempts; an existing result is kept
    for auditing.
    """
    return attempt_state_machine.void_attempt(db, attempt_id, payload.reason)


@router.post("/{attempt_id}/evaluate", response_model=SubmitResponse)
async def evaluate_attempt(attempt_id: UUID, db: Session = Depends(get_db)):
    """
    Retry evaluation of a submitted attempt

    Evaluated attempts return their existing result unchanged.
    """
    outcome = attempt_state_machine.evaluate(db, attempt_id)
    return submit_response(outcome)
