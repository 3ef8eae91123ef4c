"""
Attempt store - persistence of quiz attempts and their answers

Concurrency is delegated to the database:
- createAttempt relies on the partial unique index (one in_progress attempt per
  student+quiz) and the unique attempt_number to arbitrate concurrent starts
- recordAnswer upserts one row per question (last write wins per question) and
  guards the write with a conditional UPDATE on status='in_progress', which
  serializes it against the submit transition
"""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from pydantic import BaseModel, TypeAdapter
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.exceptions import (
    AttemptLimitExceeded,
    AttemptNotFound,
    AttemptNotInProgress,
    DuplicateActiveAttempt,
    QuestionNotInAttempt,
)
from assessment.models import AttemptAnswer, AttemptStatus, QuestionType, Quiz, QuizAttempt
from assessment.schemas.answer import Answer
from assessment.services.catalog_service import catalog_service
from assessment.utils.clock import utcnow
from assessment.utils.shuffle import new_shuffle_seed, presented_order

logger = logging.getLogger(__name__)

IN_PROGRESS = AttemptStatus.IN_PROGRESS.value

_answer_adapter = TypeAdapter(Answer)


def coerce_answer(question: Dict[str, Any], raw: Any) -> Optional[Dict[str, Any]]:
    """
    Turn a client answer into the tagged shape stored on the attempt

    Bare strings become an option id for choice questions and free text for
    short answers; lists become a multi selection. A shape that does not fit
    the question type is kept as sent and graded later as malformed.
    Returns None for an empty answer.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()

    if raw is None or raw == "" or raw == []:
        return None

    if isinstance(raw, dict):
        return _answer_adapter.validate_python(raw).model_dump()

    q_type = question.get("type")

    if isinstance(raw, bool):
        if q_type == QuestionType.TRUE_FALSE.value:
            return {"kind": "single", "option_id": "true" if raw else "false"}
        raw = str(raw).lower()

    if isinstance(raw, (int, float)):
        raw = str(raw)

    if isinstance(raw, str):
        if q_type == QuestionType.SHORT_ANSWER.value:
            return {"kind": "text", "text": raw}
        return {"kind": "single", "option_id": raw}

    if isinstance(raw, (list, tuple, set)):
        return {"kind": "multi", "option_ids": sorted({str(item) for item in raw})}

    raise TypeError(f"Unsupported answer type: {type(raw).__name__}")


class AttemptStore:
    """Service for persisting attempts"""

    def create_attempt(
        self,
        db: Session,
        student_id: UUID,
        quiz_id: UUID,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> QuizAttempt:
        """
        Start a new attempt with a frozen copy of the quiz's questions

        Raises:
            QuizNotFound, QuizNotAvailable, DuplicateActiveAttempt, AttemptLimitExceeded
        """
        now = now or utcnow()

        quiz = catalog_service.get_quiz_by_id(db, quiz_id)
        catalog_service.ensure_available(quiz, now)

        used = self._check_attempt_slots(db, student_id, quiz)

        questions = catalog_service.get_questions_for_quiz(db, quiz.id)
        snapshot = catalog_service.build_snapshot(questions)
        shuffles = bool(quiz.shuffle_questions or quiz.shuffle_options)

        fields = dict(
            student_id=student_id,
            quiz_id=quiz.id,
            status=IN_PROGRESS,
            started_at=now,
            quiz_title=quiz.title,
            duration_minutes=quiz.duration_minutes,
            passing_marks=float(quiz.passing_marks or 0),
            shuffle_questions=bool(quiz.shuffle_questions),
            shuffle_options=bool(quiz.shuffle_options),
            shuffle_seed=new_shuffle_seed() if shuffles else None,
            question_snapshot=snapshot,
            ip_address=ip_address,
            user_agent=user_agent[:500] if user_agent else None,
        )

        attempt = self._insert_attempt(db, used + 1, fields)
        if attempt is None:
            logger.info(
                f"Concurrent start lost the race: student={student_id}, quiz={quiz.id}"
            )
            # Re-classify against the row that won; a free slot is retried once
            used = self._check_attempt_slots(db, student_id, quiz)
            attempt = self._insert_attempt(db, used + 1, fields)
            if attempt is None:
                raise DuplicateActiveAttempt(quiz.id)

        logger.info(
            f"Attempt created: {attempt.id} (student={student_id}, quiz={quiz.id}, "
            f"number={attempt.attempt_number}/{quiz.max_attempts}, questions={len(snapshot)})"
        )
        return attempt

    def _insert_attempt(
        self,
        db: Session,
        attempt_number: int,
        fields: Dict[str, Any]
    ) -> Optional[QuizAttempt]:
        """Insert and commit; None when a unique index rejects the row"""
        attempt = QuizAttempt(attempt_number=attempt_number, **fields)
        db.add(attempt)

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return None
        return attempt

    def _check_attempt_slots(self, db: Session, student_id: UUID, quiz: Quiz) -> int:
        """Return the number of attempts used, or raise if none can be started"""

        active = db.query(QuizAttempt).filter(
            QuizAttempt.student_id == student_id,
            QuizAttempt.quiz_id == quiz.id,
            QuizAttempt.status == IN_PROGRESS,
        ).first()
        if active:
            raise DuplicateActiveAttempt(quiz.id, active.id)

        used = db.query(func.count(QuizAttempt.id)).filter(
            QuizAttempt.student_id == student_id,
            QuizAttempt.quiz_id == quiz.id,
        ).scalar() or 0

        if used >= quiz.max_attempts:
            raise AttemptLimitExceeded(quiz.id, quiz.max_attempts)

        return used

    def load_attempt(
        self,
        db: Session,
        attempt_id: UUID,
        student_id: Optional[UUID] = None
    ) -> QuizAttempt:
        """
        Load an attempt with fresh state from the database

        When student_id is given, attempts of other students read as not found.
        """
        query = db.query(QuizAttempt).filter(QuizAttempt.id == attempt_id)
        if student_id is not None:
            query = query.filter(QuizAttempt.student_id == student_id)

        attempt = query.populate_existing().first()
        if not attempt:
            raise AttemptNotFound(attempt_id)
        return attempt

    def record_answer(
        self,
        db: Session,
        attempt_id: UUID,
        question_id: str,
        answer: Any,
        student_id: Optional[UUID] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Save (or clear) the answer to one question

        Idempotent: saving the same question again overwrites the prior value.
        Never touches score fields.

        Raises:
            AttemptNotFound, AttemptNotInProgress, QuestionNotInAttempt
        """
        attempt = self.load_attempt(db, attempt_id, student_id)
        if attempt.status != IN_PROGRESS:
            raise AttemptNotInProgress(attempt.id, attempt.status)

        question = self.find_question(attempt, question_id)
        if question is None:
            raise QuestionNotInAttempt(attempt.id, question_id)

        tagged = coerce_answer(question, answer)

        # Conditional touch: locks the attempt row until commit and fails once
        # a submit has moved the attempt out of in_progress
        touched = db.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt.id, QuizAttempt.status == IN_PROGRESS)
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not touched:
            db.rollback()
            raise AttemptNotInProgress(attempt.id)

        self._upsert_answer(db, attempt.id, question["id"], tagged)
        db.commit()

        logger.debug(f"Answer saved: attempt={attempt.id}, question={question_id}")
        return tagged

    def _upsert_answer(
        self,
        db: Session,
        attempt_id: UUID,
        question_id: str,
        tagged: Optional[Dict[str, Any]]
    ) -> None:
        """Insert or overwrite the single row for (attempt, question)"""
        dialect = db.get_bind().dialect.name

        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            self._merge_answer(db, attempt_id, question_id, tagged)
            return

        stmt = insert(AttemptAnswer).values(
            id=uuid.uuid4(),
            attempt_id=attempt_id,
            question_id=question_id,
            answer=tagged,
            marks_obtained=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id", "question_id"],
            set_={"answer": stmt.excluded.answer, "updated_at": func.now()},
        )
        db.execute(stmt)

    def _merge_answer(
        self,
        db: Session,
        attempt_id: UUID,
        question_id: str,
        tagged: Optional[Dict[str, Any]]
    ) -> None:
        """Row-locked read-modify-write for dialects without ON CONFLICT"""
        row = db.query(AttemptAnswer).filter(
            AttemptAnswer.attempt_id == attempt_id,
            AttemptAnswer.question_id == question_id,
        ).with_for_update().first()

        if row:
            row.answer = tagged
        else:
            db.add(AttemptAnswer(attempt_id=attempt_id, question_id=question_id, answer=tagged))

    def find_question(self, attempt: QuizAttempt, question_id: str) -> Optional[Dict[str, Any]]:
        for question in attempt.question_snapshot or []:
            if question["id"] == str(question_id):
                return question
        return None

    def get_answer_rows(self, db: Session, attempt_id: UUID) -> List[AttemptAnswer]:
        return (
            db.query(AttemptAnswer)
            .filter(AttemptAnswer.attempt_id == attempt_id)
            .populate_existing()
            .all()
        )

    def get_answers(self, db: Session, attempt_id: UUID) -> Dict[str, Any]:
        """Recorded answers keyed by question id"""
        return {row.question_id: row.answer for row in self.get_answer_rows(db, attempt_id)}

    def increment_tab_switches(
        self,
        db: Session,
        attempt_id: UUID,
        student_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> QuizAttempt:
        """
        Atomically bump the tab switch counter of an in-progress attempt
        """
        attempt = self.load_attempt(db, attempt_id, student_id)
        if attempt.status != IN_PROGRESS:
            raise AttemptNotInProgress(attempt.id, attempt.status)

        touched = db.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt.id, QuizAttempt.status == IN_PROGRESS)
            .values(
                tab_switch_count=QuizAttempt.tab_switch_count + 1,
                last_tab_switch_at=now or utcnow(),
            )
            .execution_options(synchronize_session=False)
        ).rowcount
        if not touched:
            db.rollback()
            raise AttemptNotInProgress(attempt.id)

        db.commit()
        return self.load_attempt(db, attempt.id)

    def list_attempts(self, db: Session, student_id: UUID) -> List[QuizAttempt]:
        return (
            db.query(QuizAttempt)
            .filter(QuizAttempt.student_id == student_id)
            .order_by(QuizAttempt.started_at.desc())
            .all()
        )

    def attempt_usage(
        self,
        db: Session,
        student_id: UUID,
        quiz_ids: Iterable[UUID]
    ) -> Dict[UUID, Dict[str, Any]]:
        """
        Per-quiz attempt usage for one student

        Returns:
            {quiz_id: {"used": int, "active_attempt_id": UUID|None, "last_status": str|None}}
        """
        quiz_ids = list(quiz_ids)
        usage = {
            quiz_id: {"used": 0, "active_attempt_id": None, "last_status": None}
            for quiz_id in quiz_ids
        }
        if not quiz_ids:
            return usage

        attempts = (
            db.query(QuizAttempt)
            .filter(QuizAttempt.student_id == student_id, QuizAttempt.quiz_id.in_(quiz_ids))
            .order_by(QuizAttempt.attempt_number.asc())
            .all()
        )
        for attempt in attempts:
            entry = usage[attempt.quiz_id]
            entry["used"] += 1
            entry["last_status"] = attempt.status
            if attempt.status == IN_PROGRESS:
                entry["active_attempt_id"] = attempt.id

        return usage

    def presented_questions(self, attempt: QuizAttempt) -> List[Dict[str, Any]]:
        """Frozen questions in this attempt's display order, without answer keys"""
        return presented_order(
            attempt.question_snapshot or [],
            attempt.shuffle_seed,
            bool(attempt.shuffle_questions),
            bool(attempt.shuffle_options),
        )


# Global instance
attempt_store = AttemptStore()
