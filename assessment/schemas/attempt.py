"""
Pydantic schemas for attempt requests and responses
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
from datetime import datetime

from assessment.models.quiz_attempt import SubmitReason
from assessment.schemas.answer import Answer


class PresentedOption(BaseModel):
    """Option as shown to the student (no correctness flag)"""
    id: str
    text: str


class PresentedQuestion(BaseModel):
    """Question as shown to the student, in per-attempt order"""
    id: str
    type: str
    text: str
    marks: float
    options: List[PresentedOption] = []


class AttemptStartResponse(BaseModel):
    """Response after starting an attempt"""
    attempt_id: UUID
    attempt_number: int
    quiz_id: UUID
    quiz_title: Optional[str] = None
    started_at: datetime
    time_limit_seconds: int
    remaining_seconds: int
    questions: List[PresentedQuestion]


class AnswerSave(BaseModel):
    """
    Schema for saving one answer

    answer accepts the tagged shape ({"kind": "single", "option_id": "A"}) or the
    bare shapes older clients send: an option id / text string, or a list of
    option ids. null, "" and [] clear the saved answer.
    """
    question_id: str = Field(..., min_length=1)
    answer: Optional[Union[Answer, str, List[str]]] = None


class AnswerSaveResponse(BaseModel):
    message: str = "Answer saved"
    question_id: str
    answered: bool


class SubmitRequest(BaseModel):
    """Schema for submitting an attempt"""
    reason: SubmitReason = SubmitReason.USER


class TabSwitchResponse(BaseModel):
    message: str = "Tab switch recorded"
    tab_switch_count: int


class VoidRequest(BaseModel):
    """Administrative invalidation"""
    reason: str = Field(..., min_length=1, max_length=500)


class SavedAnswer(BaseModel):
    question_id: str
    answer: Optional[Dict[str, Any]] = None
    is_correct: Optional[bool] = None
    marks_obtained: float = 0

    class Config:
        from_attributes = True


class AttemptSummary(BaseModel):
    """Attempt row for the student's attempt list"""
    id: UUID
    quiz_id: UUID
    quiz_title: Optional[str] = None
    attempt_number: int
    status: str
    submit_reason: Optional[str] = None
    started_at: datetime
    submitted_at: Optional[datetime] = None
    total_score: float = 0
    percentage: float = 0
    is_passed: bool = False
    tab_switch_count: int = 0

    class Config:
        from_attributes = True


class AttemptDetail(AttemptSummary):
    """
    Full attempt state

    remaining_seconds seeds the client's display-only countdown; the server
    enforces the deadline on its own clock.
    """
    time_limit_seconds: int
    remaining_seconds: int
    questions: List[PresentedQuestion]
    answers: List[SavedAnswer]
