"""
Quiz and Question models - catalog tables, read-only to the attempt engine
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, Uuid, func
)
from sqlalchemy.orm import relationship
from assessment.database import Base, JSONType
import enum
import uuid


class QuestionType(str, enum.Enum):
    """Question types, stored with their catalog wire values"""
    SINGLE_CHOICE = "mcq"
    MULTI_CHOICE = "mcq_multiple"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


CHOICE_TYPES = {QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE, QuestionType.TRUE_FALSE}


class Quiz(Base):
    """
    Quizzes table - quiz definitions authored by coordinators
    """
    __tablename__ = "quizzes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    subject = Column(String(100))

    duration_minutes = Column(Integer, nullable=False, default=30)
    max_attempts = Column(Integer, nullable=False, default=1)
    total_marks = Column(Float, nullable=False, default=0)
    passing_marks = Column(Float, nullable=False, default=0)

    shuffle_questions = Column(Boolean, default=False)
    shuffle_options = Column(Boolean, default=False)

    # Validity window (naive UTC)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)

    is_active = Column(Boolean, default=True)
    is_published = Column(Boolean, default=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    questions = relationship(
        "Question",
        back_populates="quiz",
        order_by="Question.order_number",
    )

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, max_attempts={self.max_attempts})>"


class Question(Base):
    """
    Questions table - ordered questions with their answer key

    options holds either the canonical list [{"id", "text", "is_correct"}] or the
    legacy letter-keyed object {"A": "...", "B": "..."} paired with correct_answer.
    """
    __tablename__ = "questions"
    __table_args__ = (
        Index("ix_questions_quiz_order", "quiz_id", "order_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False, default=QuestionType.SINGLE_CHOICE.value)
    options = Column(JSONType)
    correct_answer = Column(String(500))  # short answer reference, or legacy option letter
    marks = Column(Float, nullable=False, default=1)
    order_number = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())

    quiz = relationship("Quiz", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, quiz_id={self.quiz_id}, type={self.question_type})>"
