"""
Attempt state machine - legal transitions, deadlines and tab-switch policy

    in_progress ──submit──▶ submitted ──evaluate──▶ evaluated
         │                      │                       │
         └──────────────── void (admin) ───────────────▶ voided

Every transition is a conditional UPDATE on the current status, so two
requests racing on the same attempt cannot both win. The deadline is checked
against the server clock only; client timers are advisory.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assessment.config import settings
from assessment.exceptions import (
    AttemptNotInProgress,
    EvaluationFailed,
    InvalidTransition,
    ResultAlreadyExists,
)
from assessment.models import AttemptStatus, QuizAttempt, Result, SubmitReason
from assessment.services.attempt_store import AttemptStore, attempt_store
from assessment.services.event_publisher import (
    ATTEMPT_EVALUATED,
    ATTEMPT_STARTED,
    ATTEMPT_SUBMITTED,
    ATTEMPT_VOIDED,
    TAB_SWITCH_RECORDED,
    EventPublisher,
    event_publisher,
)
from assessment.services.grading_service import GradingService, ScoringOutput, grading_service
from assessment.services.result_service import ResultService, result_service
from assessment.utils.clock import utcnow

logger = logging.getLogger(__name__)

IN_PROGRESS = AttemptStatus.IN_PROGRESS.value
SUBMITTED = AttemptStatus.SUBMITTED.value
EVALUATED = AttemptStatus.EVALUATED.value
VOIDED = AttemptStatus.VOIDED.value

# Voiding is an administrative override and is allowed from every live state
ALLOWED_TRANSITIONS = {
    IN_PROGRESS: {SUBMITTED, VOIDED},
    SUBMITTED: {EVALUATED, VOIDED},
    EVALUATED: {VOIDED},
    VOIDED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def deadline_for(attempt: QuizAttempt) -> datetime:
    return attempt.started_at + timedelta(minutes=attempt.duration_minutes or 0)


def remaining_seconds(attempt: QuizAttempt, now: Optional[datetime] = None) -> int:
    """Seconds left on the server clock; 0 once submitted or expired"""
    if attempt.status != IN_PROGRESS:
        return 0
    left = (deadline_for(attempt) - (now or utcnow())).total_seconds()
    return max(0, int(left))


@dataclass(frozen=True)
class TabSwitchPolicy:
    """Auto-submit once the tab switch count goes past max_switches"""
    max_switches: int

    def is_violated(self, tab_switch_count: int) -> bool:
        return tab_switch_count > self.max_switches


@dataclass
class SubmitOutcome:
    attempt: QuizAttempt
    result: Result
    already_evaluated: bool = False


class AttemptStateMachine:
    """
    Orchestrates the attempt lifecycle on top of the store, grader and
    result projection, and emits lifecycle events after each commit
    """

    def __init__(
        self,
        store: AttemptStore = attempt_store,
        grader: GradingService = grading_service,
        results: ResultService = result_service,
        events: EventPublisher = event_publisher,
        policy: Optional[TabSwitchPolicy] = None,
        answer_grace_seconds: int = 0
    ):
        self.store = store
        self.grader = grader
        self.results = results
        self.events = events
        self.policy = policy
        self.answer_grace = timedelta(seconds=answer_grace_seconds)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(
        self,
        db: Session,
        student_id: UUID,
        quiz_id: UUID,
        now: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> QuizAttempt:
        attempt = self.store.create_attempt(
            db, student_id, quiz_id, now=now, ip_address=ip_address, user_agent=user_agent
        )

        self.events.emit(db, ATTEMPT_STARTED, attempt, {
            "attempt_number": attempt.attempt_number,
            "question_count": len(attempt.question_snapshot or []),
            "duration_minutes": attempt.duration_minutes,
        })
        return attempt

    # ------------------------------------------------------------------
    # Answers and proctoring
    # ------------------------------------------------------------------

    def record_answer(
        self,
        db: Session,
        attempt_id: UUID,
        question_id: str,
        answer: Any,
        student_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Save an answer after the entry checks

        Past the deadline (plus grace) or past the tab-switch limit the attempt
        is submitted instead and the answer is rejected.
        """
        now = now or utcnow()
        attempt = self.store.load_attempt(db, attempt_id, student_id)

        if attempt.status == IN_PROGRESS:
            reason = self._forced_submit_reason(attempt, now)
            if reason is not None:
                self._auto_submit(db, attempt, reason, now)
                raise AttemptNotInProgress(
                    attempt.id,
                    attempt.status,
                    message=self._auto_submit_message(reason),
                )

        return self.store.record_answer(db, attempt.id, question_id, answer, student_id)

    def record_tab_switch(
        self,
        db: Session,
        attempt_id: UUID,
        student_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> QuizAttempt:
        """Count a tab switch; never changes the attempt's status by itself"""
        attempt = self.store.increment_tab_switches(db, attempt_id, student_id, now=now)

        logger.info(f"Tab switch recorded: attempt={attempt.id}, count={attempt.tab_switch_count}")
        self.events.emit(db, TAB_SWITCH_RECORDED, attempt, {
            "tab_switch_count": attempt.tab_switch_count,
        })
        return attempt

    def _forced_submit_reason(self, attempt: QuizAttempt, now: datetime) -> Optional[SubmitReason]:
        if now > deadline_for(attempt) + self.answer_grace:
            return SubmitReason.TIMEOUT
        if self.policy and self.policy.is_violated(attempt.tab_switch_count or 0):
            return SubmitReason.TAB_SWITCH_POLICY
        return None

    def _auto_submit(self, db: Session, attempt: QuizAttempt, reason: SubmitReason, now: datetime) -> None:
        logger.info(f"Auto-submitting attempt {attempt.id}: {reason.value}")
        try:
            self.submit(db, attempt.id, reason=reason, now=now)
        except AttemptNotInProgress:
            logger.info(f"Attempt {attempt.id} was submitted concurrently")
        except EvaluationFailed as e:
            # Submission stands; evaluation is retried through evaluate()
            logger.error(f"Auto-submitted attempt {attempt.id} could not be evaluated: {e.details}")

    @staticmethod
    def _auto_submit_message(reason: SubmitReason) -> str:
        if reason == SubmitReason.TIMEOUT:
            return "Time is up. Your attempt has been submitted automatically"
        return "Your attempt was submitted automatically after too many tab switches"

    # ------------------------------------------------------------------
    # Submit and evaluate
    # ------------------------------------------------------------------

    def submit(
        self,
        db: Session,
        attempt_id: UUID,
        reason: Union[SubmitReason, str] = SubmitReason.USER,
        student_id: Optional[UUID] = None,
        now: Optional[datetime] = None
    ) -> SubmitOutcome:
        """
        Freeze the answers, then grade synchronously

        The effective submission time is clamped to the deadline, so a late
        request cannot buy extra answering time.

        Raises:
            AttemptNotFound, AttemptNotInProgress, EvaluationFailed
        """
        now = now or utcnow()
        reason = SubmitReason(reason)

        attempt = self.store.load_attempt(db, attempt_id, student_id)
        if attempt.status != IN_PROGRESS:
            raise AttemptNotInProgress(attempt.id, attempt.status)

        if self.policy and self.policy.is_violated(attempt.tab_switch_count or 0):
            reason = SubmitReason.TAB_SWITCH_POLICY

        deadline = deadline_for(attempt)
        if now >= deadline and reason == SubmitReason.USER:
            reason = SubmitReason.TIMEOUT
        submitted_at = min(now, deadline)

        if not self._transition(
            db, attempt, IN_PROGRESS, SUBMITTED,
            submitted_at=submitted_at,
            submit_reason=reason.value,
        ):
            raise AttemptNotInProgress(attempt.id)
        db.commit()

        attempt = self.store.load_attempt(db, attempt.id)
        late_by = max(0, int((now - deadline).total_seconds()))
        logger.info(
            f"Attempt submitted: {attempt.id} (reason={reason.value}, late_by={late_by}s)"
        )
        self.events.emit(db, ATTEMPT_SUBMITTED, attempt, {
            "reason": reason.value,
            "late_by_seconds": late_by,
        })

        return self.evaluate(db, attempt.id)

    def evaluate(self, db: Session, attempt_id: UUID) -> SubmitOutcome:
        """
        Grade a submitted attempt and persist its Result

        Safe to call again: grading is recomputed from the frozen answers. An
        attempt whose Result already exists is moved to evaluated with the
        stored score.
        """
        attempt = self.store.load_attempt(db, attempt_id)

        if attempt.status == EVALUATED:
            return SubmitOutcome(attempt, self.results.get_for_attempt(db, attempt.id), True)
        if attempt.status != SUBMITTED:
            raise AttemptNotInProgress(
                attempt.id, attempt.status, message="Only submitted attempts can be evaluated"
            )

        answers = self.store.get_answers(db, attempt.id)
        try:
            scoring = self.grader.evaluate(attempt.question_snapshot or [], answers)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Scoring failed for attempt {attempt.id}: {str(e)}", exc_info=True)
            raise EvaluationFailed(attempt.id, str(e)) from e

        is_passed = scoring.is_passed(float(attempt.passing_marks or 0))
        remarks = self.grader.generate_remarks(scoring.percentage, is_passed)

        try:
            result = self.results.project(db, attempt, scoring, remarks=remarks)
            self._apply_scores(db, attempt.id, scoring)

            if not self._transition(
                db, attempt, SUBMITTED, EVALUATED,
                total_score=scoring.total_score,
                percentage=scoring.percentage,
                is_passed=is_passed,
            ):
                current = self.store.load_attempt(db, attempt.id)
                if current.status != EVALUATED:
                    raise AttemptNotInProgress(current.id, current.status)
                return self._existing_outcome(db, attempt.id)

            db.commit()
        except ResultAlreadyExists:
            logger.info(f"Result already exists for attempt {attempt.id}; completing evaluation")
            return self._complete_from_existing(db, attempt, scoring)
        except SQLAlchemyError:
            db.rollback()
            raise

        attempt = self.store.load_attempt(db, attempt.id)
        self.events.emit(db, ATTEMPT_EVALUATED, attempt, {
            "result_id": str(result.id),
            "total_score": scoring.total_score,
            "max_score": scoring.max_score,
            "percentage": scoring.percentage,
            "is_passed": is_passed,
        })
        return SubmitOutcome(attempt, result, False)

    def _existing_outcome(self, db: Session, attempt_id: UUID) -> SubmitOutcome:
        attempt = self.store.load_attempt(db, attempt_id)
        return SubmitOutcome(attempt, self.results.get_for_attempt(db, attempt_id), True)

    def _complete_from_existing(
        self,
        db: Session,
        attempt: QuizAttempt,
        scoring: ScoringOutput
    ) -> SubmitOutcome:
        """
        Finish an evaluation whose Result was already written

        The attempt takes its score from the stored Result so both agree.
        """
        db.rollback()
        result = self.results.get_for_attempt(db, attempt.id)

        self._apply_scores(db, attempt.id, scoring)
        if not self._transition(
            db, attempt, SUBMITTED, EVALUATED,
            total_score=result.total_score,
            percentage=result.percentage,
            is_passed=result.is_passed,
        ):
            current = self.store.load_attempt(db, attempt.id)
            if current.status != EVALUATED:
                raise AttemptNotInProgress(current.id, current.status)
            return self._existing_outcome(db, attempt.id)

        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        attempt = self.store.load_attempt(db, attempt.id)
        self.events.emit(db, ATTEMPT_EVALUATED, attempt, {
            "result_id": str(result.id),
            "total_score": result.total_score,
            "max_score": result.max_score,
            "percentage": result.percentage,
            "is_passed": result.is_passed,
        })
        return SubmitOutcome(attempt, result, True)

    def _apply_scores(self, db: Session, attempt_id: UUID, scoring: ScoringOutput) -> None:
        """Write per-question correctness onto the recorded answer rows"""
        outcomes = {outcome.question_id: outcome for outcome in scoring.per_question}

        for row in self.store.get_answer_rows(db, attempt_id):
            outcome = outcomes.get(row.question_id)
            if outcome is None:
                continue
            row.is_correct = outcome.is_correct
            row.marks_obtained = outcome.marks_obtained

        db.flush()

    # ------------------------------------------------------------------
    # Administrative hook
    # ------------------------------------------------------------------

    def void_attempt(
        self,
        db: Session,
        attempt_id: UUID,
        reason: str
    ) -> QuizAttempt:
        """
        Invalidate an attempt (administrative, audited)

        The attempt still counts toward max_attempts and its Result, if any,
        is kept for the audit trail.
        """
        attempt = self.store.load_attempt(db, attempt_id)
        previous = attempt.status

        if not self._transition(db, attempt, previous, VOIDED, void_reason=reason):
            raise AttemptNotInProgress(attempt.id, message="Attempt changed state; retry the request")
        db.commit()

        attempt = self.store.load_attempt(db, attempt.id)
        logger.warning(f"Attempt voided: {attempt.id} (was {previous}): {reason}")
        self.events.emit(db, ATTEMPT_VOIDED, attempt, {
            "previous_status": previous,
            "reason": reason,
        })
        return attempt

    # ------------------------------------------------------------------

    def _transition(
        self,
        db: Session,
        attempt: QuizAttempt,
        current: str,
        target: str,
        **values: Any
    ) -> bool:
        """
        Compare-and-set the status; False when another request moved it first
        """
        if not can_transition(current, target):
            raise InvalidTransition(attempt.id, current, target)

        rowcount = db.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt.id, QuizAttempt.status == current)
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        ).rowcount

        if not rowcount:
            db.rollback()
            logger.info(f"Transition {current} -> {target} lost a race for attempt {attempt.id}")
            return False

        logger.debug(f"Attempt {attempt.id}: {current} -> {target}")
        return True


def build_tab_switch_policy(limit: Optional[int]) -> Optional[TabSwitchPolicy]:
    return TabSwitchPolicy(max_switches=limit) if limit is not None else None


# Global instance
attempt_state_machine = AttemptStateMachine(
    policy=build_tab_switch_policy(settings.TAB_SWITCH_LIMIT),
    answer_grace_seconds=settings.ANSWER_GRACE_SECONDS,
)
