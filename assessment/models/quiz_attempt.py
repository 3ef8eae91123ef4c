"""
QuizAttempt model - one timed attempt of one student at one quiz
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint,
    Uuid, func, text
)
from sqlalchemy.orm import relationship
from assessment.database import Base, JSONType
import enum
import uuid


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    EVALUATED = "evaluated"
    VOIDED = "voided"


class SubmitReason(str, enum.Enum):
    USER = "user"
    TIMEOUT = "timeout"
    TAB_SWITCH_POLICY = "tab_switch_policy"


class QuizAttempt(Base):
    """
    Quiz attempts table - frozen question snapshot, status and computed score

    Storage-level invariants:
    - at most one in_progress attempt per (student, quiz) via a partial unique index
    - attempt_number unique per (student, quiz), so concurrent starts cannot both
      claim the same slot under max_attempts
    """
    __tablename__ = "quiz_attempts"
    __table_args__ = (
        UniqueConstraint("student_id", "quiz_id", "attempt_number", name="uq_attempt_number"),
        Index(
            "uq_attempt_active",
            "student_id",
            "quiz_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
        Index("ix_quiz_attempts_status", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id"), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False, default=1)

    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)
    submit_reason = Column(String(30))
    void_reason = Column(String(500))

    started_at = Column(DateTime, nullable=False)
    submitted_at = Column(DateTime)

    # Frozen at start
    quiz_title = Column(String(255))
    duration_minutes = Column(Integer, nullable=False)
    passing_marks = Column(Float, nullable=False, default=0)
    shuffle_questions = Column(Boolean, default=False)
    shuffle_options = Column(Boolean, default=False)
    shuffle_seed = Column(Integer)
    question_snapshot = Column(JSONType, nullable=False)  # [{id, type, marks, options, correct_answer}]

    # Computed on evaluation
    total_score = Column(Float, default=0)
    percentage = Column(Float, default=0)
    is_passed = Column(Boolean, default=False)

    # Proctoring
    tab_switch_count = Column(Integer, nullable=False, default=0)
    last_tab_switch_at = Column(DateTime)

    ip_address = Column(String(64))
    user_agent = Column(String(500))

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    answers = relationship(
        "AttemptAnswer",
        back_populates="attempt",
        order_by="AttemptAnswer.created_at",
    )

    def __repr__(self):
        return (
            f"<QuizAttempt(id={self.id}, student_id={self.student_id}, "
            f"quiz_id={self.quiz_id}, status={self.status})>"
        )


class AttemptAnswer(Base):
    """
    Attempt answers table - one row per answered question

    Row-per-question storage makes autosave a field-level upsert: concurrent
    saves to different questions never overwrite each other.
    """
    __tablename__ = "attempt_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answer_question"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attempt_id = Column(Uuid, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(String(64), nullable=False)
    answer = Column(JSONType)  # tagged: {"kind": "single"|"multi"|"text", ...}
    is_correct = Column(Boolean)  # null until evaluated
    marks_obtained = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    attempt = relationship("QuizAttempt", back_populates="answers")

    def __repr__(self):
        return f"<AttemptAnswer(attempt_id={self.attempt_id}, question_id={self.question_id})>"
