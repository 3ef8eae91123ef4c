"""
Catalog lookup service - read-only access to quizzes and their questions

Also owns the normalization of stored option shapes into the single canonical
form [{"id", "text", "is_correct"}] used everywhere downstream.
"""
import logging
import string
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from assessment.exceptions import QuizNotAvailable, QuizNotFound
from assessment.models import Question, QuestionType, Quiz

logger = logging.getLogger(__name__)

TRUTHY = {"true", "t", "1", "yes"}


class CatalogService:
    """Service for reading quiz definitions"""

    def get_quiz_by_id(self, db: Session, quiz_id: UUID) -> Quiz:
        quiz = db.get(Quiz, quiz_id)
        if not quiz:
            raise QuizNotFound(quiz_id)
        return quiz

    def get_questions_for_quiz(self, db: Session, quiz_id: UUID) -> List[Question]:
        """Questions in display order"""
        return (
            db.query(Question)
            .filter(Question.quiz_id == quiz_id)
            .order_by(Question.order_number.asc(), Question.created_at.asc())
            .all()
        )

    def list_open_quizzes(self, db: Session, now: datetime) -> List[Quiz]:
        """Active, published quizzes whose window contains now"""
        return (
            db.query(Quiz)
            .filter(
                Quiz.is_active.is_(True),
                Quiz.is_published.is_(True),
                Quiz.start_time <= now,
                Quiz.end_time >= now,
            )
            .order_by(Quiz.start_time.asc())
            .all()
        )

    def ensure_available(self, quiz: Quiz, now: datetime) -> None:
        """
        Raise QuizNotAvailable unless the quiz can be attempted at `now`
        """
        if not quiz.is_active or not quiz.is_published:
            raise QuizNotAvailable(quiz.id, "Quiz is not available")
        if now < quiz.start_time:
            raise QuizNotAvailable(quiz.id, "Quiz has not started yet")
        if now > quiz.end_time:
            raise QuizNotAvailable(quiz.id, "Quiz has ended")

    def build_snapshot(self, questions: List[Question]) -> List[Dict[str, Any]]:
        """
        Copy questions and their answer key into plain JSON

        The copy is stored on the attempt so later quiz edits cannot change
        what an in-flight attempt is graded against.
        """
        snapshot = []
        for question in questions:
            q_type = question.question_type
            is_text = q_type == QuestionType.SHORT_ANSWER.value

            snapshot.append({
                "id": str(question.id),
                "type": q_type,
                "text": question.question_text,
                "marks": float(question.marks or 0),
                "order_number": question.order_number,
                "options": [] if is_text else normalize_options(
                    q_type, question.options, question.correct_answer
                ),
                "correct_answer": question.correct_answer if is_text else None,
            })

        return snapshot


def _correct_keys(correct_answer: Optional[str]) -> set:
    """Legacy correct_answer: "A", "a, c" or an option index"""
    if correct_answer is None:
        return set()
    return {part.strip().upper() for part in str(correct_answer).split(",") if part.strip()}


def normalize_options(
    question_type: str,
    raw_options: Any,
    correct_answer: Optional[str] = None
) -> List[Dict[str, Any]]:
    """
    Normalize any stored option shape to [{"id", "text", "is_correct"}]

    Handles:
    - canonical list of option dicts (is_correct or isCorrect flag)
    - list of option strings with correct_answer as a letter or index
    - legacy object keyed by letter {"A": "...", ...} with correct_answer letter(s)
    - true/false questions stored without options
    """
    keys = _correct_keys(correct_answer)

    if isinstance(raw_options, dict):
        return [
            {
                "id": str(letter),
                "text": str(text),
                "is_correct": str(letter).upper() in keys,
            }
            for letter, text in sorted(raw_options.items())
        ]

    if isinstance(raw_options, list) and raw_options:
        options = []
        for index, raw in enumerate(raw_options):
            letter = string.ascii_uppercase[index] if index < 26 else str(index)

            if isinstance(raw, dict):
                option_id = raw.get("id") or raw.get("_id") or letter
                flagged = raw.get("is_correct", raw.get("isCorrect"))
                is_correct = bool(flagged) if flagged is not None else (
                    letter in keys or str(index) in keys
                )
                options.append({
                    "id": str(option_id),
                    "text": str(raw.get("text", "")),
                    "is_correct": is_correct,
                })
            else:
                options.append({
                    "id": letter,
                    "text": str(raw),
                    "is_correct": letter in keys or str(index) in keys,
                })
        return options

    if question_type == QuestionType.TRUE_FALSE.value:
        answer_is_true = str(correct_answer or "").strip().lower() in TRUTHY
        return [
            {"id": "true", "text": "True", "is_correct": answer_is_true},
            {"id": "false", "text": "False", "is_correct": not answer_is_true and correct_answer is not None},
        ]

    logger.warning(f"Question of type {question_type} has no usable options")
    return []


# Global instance
catalog_service = CatalogService()
