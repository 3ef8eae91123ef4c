"""
Result model - read-optimized scoring outcome, exactly one per evaluated attempt
"""
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, Text, Uuid, func
from assessment.database import Base
import uuid


class Result(Base):
    """
    Results table - consumed by dashboards and the batch ranking job
    """
    __tablename__ = "results"
    __table_args__ = (
        Index("ix_results_quiz_score", "quiz_id", "total_score"),
        Index("ix_results_student_created", "student_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id"), nullable=False, index=True)
    student_id = Column(Uuid, nullable=False, index=True)
    attempt_id = Column(Uuid, ForeignKey("quiz_attempts.id"), nullable=False, unique=True)

    total_score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False, default=0)
    is_passed = Column(Boolean, nullable=False, default=False)
    passing_marks = Column(Float, nullable=False)

    correct_answers = Column(Integer, default=0)
    incorrect_answers = Column(Integer, default=0)
    unanswered = Column(Integer, default=0)

    time_taken = Column(Integer, nullable=False)  # seconds
    submitted_at = Column(DateTime, nullable=False)

    rank = Column(Integer)  # filled by the batch ranking job
    remarks = Column(Text)

    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<Result(attempt_id={self.attempt_id}, score={self.total_score}/{self.max_score})>"
