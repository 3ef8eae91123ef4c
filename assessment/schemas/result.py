"""
Pydantic schemas for results
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class ResultResponse(BaseModel):
    """Persisted scoring outcome of one attempt"""
    id: UUID
    quiz_id: UUID
    student_id: UUID
    attempt_id: UUID
    total_score: float
    max_score: float
    percentage: float
    is_passed: bool
    passing_marks: float
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    time_taken: int
    submitted_at: datetime
    rank: Optional[int] = None
    remarks: Optional[str] = None

    class Config:
        from_attributes = True


class SubmitResponse(BaseModel):
    """Response after submitting (or re-evaluating) an attempt"""
    attempt_id: UUID
    status: str
    submit_reason: Optional[str] = None
    score_display: str  # "8.5/10"
    already_evaluated: bool = False
    result: ResultResponse
