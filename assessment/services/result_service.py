"""
Result projection service - one-way transformation of an evaluated attempt
into its read-optimized Result row
"""
import logging
import math
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assessment.exceptions import ResultAlreadyExists, ResultNotFound
from assessment.models import QuizAttempt, Result
from assessment.services.grading_service import ScoringOutput

logger = logging.getLogger(__name__)


def time_taken_seconds(attempt: QuizAttempt) -> int:
    """submitted_at - started_at in whole seconds, floored, never negative"""
    if not attempt.submitted_at or not attempt.started_at:
        return 0
    elapsed = (attempt.submitted_at - attempt.started_at).total_seconds()
    return max(0, int(math.floor(elapsed)))


class ResultService:
    """Service for creating and reading results"""

    def project(
        self,
        db: Session,
        attempt: QuizAttempt,
        scoring: ScoringOutput,
        remarks: Optional[str] = None
    ) -> Result:
        """
        Create the Result for a submitted attempt

        The row is flushed (not committed) so it lands in the caller's
        transaction together with the attempt's status change.

        Raises:
            ResultAlreadyExists: a Result already references this attempt
        """
        existing = db.query(Result.id).filter(Result.attempt_id == attempt.id).first()
        if existing:
            raise ResultAlreadyExists(attempt.id)

        passing_marks = float(attempt.passing_marks or 0)

        result = Result(
            quiz_id=attempt.quiz_id,
            student_id=attempt.student_id,
            attempt_id=attempt.id,
            total_score=scoring.total_score,
            max_score=scoring.max_score,
            percentage=scoring.percentage,
            is_passed=scoring.is_passed(passing_marks),
            passing_marks=passing_marks,
            correct_answers=scoring.correct_count,
            incorrect_answers=scoring.incorrect_count,
            unanswered=scoring.unanswered_count,
            time_taken=time_taken_seconds(attempt),
            submitted_at=attempt.submitted_at,
            remarks=remarks,
        )
        db.add(result)

        try:
            db.flush()
        except IntegrityError:
            # Unique attempt_id: a concurrent evaluation inserted first
            db.rollback()
            raise ResultAlreadyExists(attempt.id)

        logger.info(
            f"Result projected: attempt={attempt.id}, score={result.total_score}/{result.max_score}, "
            f"passed={result.is_passed}, time_taken={result.time_taken}s"
        )
        return result

    def get_for_attempt(self, db: Session, attempt_id: UUID) -> Result:
        result = db.query(Result).filter(Result.attempt_id == attempt_id).first()
        if not result:
            raise ResultNotFound(attempt_id)
        return result

    def get_result(self, db: Session, result_id: UUID, student_id: Optional[UUID] = None) -> Result:
        query = db.query(Result).filter(Result.id == result_id)
        if student_id is not None:
            query = query.filter(Result.student_id == student_id)

        result = query.first()
        if not result:
            raise ResultNotFound(result_id)
        return result

    def list_results(self, db: Session, student_id: UUID) -> List[Result]:
        return (
            db.query(Result)
            .filter(Result.student_id == student_id)
            .order_by(Result.created_at.desc(), Result.submitted_at.desc())
            .all()
        )


# Global instance
result_service = ResultService()
