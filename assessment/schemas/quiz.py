"""
Pydantic schemas for quiz listing and details
"""
from pydantic import BaseModel
from typing import Optional
from uuid import UUID
from datetime import datetime


class QuizDetails(BaseModel):
    """Quiz information shown before an attempt starts"""
    id: UUID
    title: str
    description: Optional[str] = None
    subject: Optional[str] = None
    duration_minutes: int
    total_questions: int
    total_marks: float
    passing_marks: float
    max_attempts: int
    start_time: datetime
    end_time: datetime


class AvailableQuiz(QuizDetails):
    """Open quiz with the student's attempt usage"""
    attempts_used: int = 0
    attempts_remaining: int = 0
    active_attempt_id: Optional[UUID] = None
    last_attempt_status: Optional[str] = None
