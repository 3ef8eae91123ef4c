"""
Tests for the attempt lifecycle: submit, deadlines, tab-switch policy, evaluation and voiding
"""
from datetime import timedelta

import pytest

from assessment.exceptions import (
    AttemptNotInProgress,
    EvaluationFailed,
    InvalidTransition,
)
from assessment.models import AuditLog, AttemptAnswer, AttemptStatus, Result, SubmitReason
from assessment.services.attempt_state_machine import (
    AttemptStateMachine,
    TabSwitchPolicy,
    can_transition,
    deadline_for,
    remaining_seconds,
)
from assessment.services.grading_service import GradingService, grading_service
from assessment.services.result_service import result_service
from assessment.utils.clock import utcnow


class FlakyGrader(GradingService):
    """Fails the first evaluation, then grades normally"""

    def __init__(self):
        self.calls = 0

    def evaluate(self, questions, answers):
        self.calls += 1
        if self.calls == 1:
            raise ValueError("grader unavailable")
        return super().evaluate(questions, answers)


class TestTransitionTable:

    @pytest.mark.parametrize('current, target, allowed', [
        ('in_progress', 'submitted', True),
        ('in_progress', 'evaluated', False),
        ('submitted', 'evaluated', True),
        ('submitted', 'in_progress', False),
        ('evaluated', 'voided', True),
        ('evaluated', 'submitted', False),
        ('voided', 'in_progress', False),
    ])
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed

    def test_policy_threshold(self):
        policy = TabSwitchPolicy(max_switches=3)

        assert policy.is_violated(3) is False
        assert policy.is_violated(4) is True


class TestSubmit:

    def test_submit_grades_and_projects_result(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        q1, q2 = [q['id'] for q in attempt.question_snapshot]
        machine.record_answer(db_session, attempt.id, q1, 'A')
        machine.record_answer(db_session, attempt.id, q2, 'B')

        outcome = machine.submit(db_session, attempt.id)

        assert outcome.attempt.status == AttemptStatus.EVALUATED.value
        assert outcome.attempt.submit_reason == SubmitReason.USER.value
        assert outcome.already_evaluated is False
        assert outcome.result.total_score == 1
        assert outcome.result.percentage == 50
        assert outcome.result.correct_answers == 1
        assert outcome.result.incorrect_answers == 1
        assert outcome.result.unanswered == 0
        assert outcome.result.is_passed is True
        assert outcome.attempt.total_score == outcome.result.total_score

        rows = {row.question_id: row for row in db_session.query(AttemptAnswer).all()}
        assert rows[q1].is_correct is True
        assert rows[q1].marks_obtained == 1
        assert rows[q2].is_correct is False

    def test_late_submit_is_capped_at_deadline(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz(duration_minutes=10)
        started = utcnow()
        attempt = machine.start(db_session, student_id, quiz.id, now=started)

        outcome = machine.submit(db_session, attempt.id, now=started + timedelta(minutes=15))

        assert outcome.attempt.submitted_at == deadline_for(outcome.attempt)
        assert outcome.attempt.submit_reason == SubmitReason.TIMEOUT.value
        assert outcome.result.time_taken == 600

    def test_second_submit_rejected(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.submit(db_session, attempt.id)

        with pytest.raises(AttemptNotInProgress):
            machine.submit(db_session, attempt.id)

        assert db_session.query(Result).count() == 1

    def test_unanswered_quiz(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)

        outcome = machine.submit(db_session, attempt.id)

        assert outcome.result.unanswered == 2
        assert outcome.result.total_score == 0
        assert outcome.result.is_passed is False


class TestDeadline:

    def test_remaining_seconds(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz(duration_minutes=10)
        started = utcnow()
        attempt = machine.start(db_session, student_id, quiz.id, now=started)

        assert remaining_seconds(attempt, started + timedelta(minutes=4)) == 360
        assert remaining_seconds(attempt, started + timedelta(minutes=11)) == 0

    def test_answer_after_deadline_auto_submits(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz(duration_minutes=10)
        started = utcnow()
        attempt = machine.start(db_session, student_id, quiz.id, now=started)
        q1 = attempt.question_snapshot[0]['id']

        with pytest.raises(AttemptNotInProgress) as exc:
            machine.record_answer(db_session, attempt.id, q1, 'A', now=started + timedelta(minutes=11))
        assert 'Time is up' in exc.value.message

        reloaded = machine.store.load_attempt(db_session, attempt.id)
        assert reloaded.status == AttemptStatus.EVALUATED.value
        assert reloaded.submit_reason == SubmitReason.TIMEOUT.value
        assert machine.store.get_answers(db_session, attempt.id) == {}

    def test_answer_within_grace_is_saved(self, db_session, make_quiz, student_id):
        machine = AttemptStateMachine(answer_grace_seconds=5)
        quiz = make_quiz(duration_minutes=10)
        started = utcnow()
        attempt = machine.start(db_session, student_id, quiz.id, now=started)
        q1 = attempt.question_snapshot[0]['id']

        machine.record_answer(
            db_session, attempt.id, q1, 'A', now=started + timedelta(minutes=10, seconds=3)
        )

        assert machine.store.get_answers(db_session, attempt.id) == {q1: {'kind': 'single', 'option_id': 'A'}}


class TestTabSwitchPolicy:

    def test_switches_only_recorded(self, db_session, make_quiz, strict_machine, student_id):
        quiz = make_quiz()
        attempt = strict_machine.start(db_session, student_id, quiz.id)

        for _ in range(3):
            updated = strict_machine.record_tab_switch(db_session, attempt.id)

        assert updated.tab_switch_count == 3
        assert updated.status == AttemptStatus.IN_PROGRESS.value

    def test_next_answer_after_violation_auto_submits(self, db_session, make_quiz, strict_machine, student_id):
        quiz = make_quiz()
        attempt = strict_machine.start(db_session, student_id, quiz.id)
        for _ in range(3):
            strict_machine.record_tab_switch(db_session, attempt.id)

        with pytest.raises(AttemptNotInProgress):
            strict_machine.record_answer(db_session, attempt.id, attempt.question_snapshot[0]['id'], 'A')

        reloaded = strict_machine.store.load_attempt(db_session, attempt.id)
        assert reloaded.status == AttemptStatus.EVALUATED.value
        assert reloaded.submit_reason == SubmitReason.TAB_SWITCH_POLICY.value

    def test_user_submit_after_violation_records_policy_reason(
        self, db_session, make_quiz, strict_machine, student_id
    ):
        quiz = make_quiz()
        attempt = strict_machine.start(db_session, student_id, quiz.id)
        for _ in range(3):
            strict_machine.record_tab_switch(db_session, attempt.id)

        outcome = strict_machine.submit(db_session, attempt.id, reason=SubmitReason.USER)

        assert outcome.attempt.submit_reason == SubmitReason.TAB_SWITCH_POLICY.value

    def test_within_limit_is_not_a_violation(self, db_session, make_quiz, strict_machine, student_id):
        quiz = make_quiz()
        attempt = strict_machine.start(db_session, student_id, quiz.id)
        strict_machine.record_tab_switch(db_session, attempt.id)
        strict_machine.record_tab_switch(db_session, attempt.id)

        strict_machine.record_answer(db_session, attempt.id, attempt.question_snapshot[0]['id'], 'A')

        outcome = strict_machine.submit(db_session, attempt.id)
        assert outcome.attempt.submit_reason == SubmitReason.USER.value


class TestEvaluate:

    def test_evaluated_attempt_returns_existing_result(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        first = machine.submit(db_session, attempt.id)

        again = machine.evaluate(db_session, attempt.id)

        assert again.already_evaluated is True
        assert again.result.id == first.result.id
        assert db_session.query(Result).count() == 1

    def test_existing_result_completes_the_attempt(self, db_session, make_quiz, student_id):
        grader = FlakyGrader()
        machine = AttemptStateMachine(grader=grader)
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.record_answer(db_session, attempt.id, attempt.question_snapshot[0]['id'], 'A')

        with pytest.raises(EvaluationFailed):
            machine.submit(db_session, attempt.id)

        # Result written by an earlier evaluation that never moved the attempt
        submitted = machine.store.load_attempt(db_session, attempt.id)
        scoring = grading_service.evaluate(
            submitted.question_snapshot, machine.store.get_answers(db_session, attempt.id)
        )
        existing = result_service.project(db_session, submitted, scoring)
        db_session.commit()

        outcome = machine.evaluate(db_session, attempt.id)

        assert outcome.already_evaluated is True
        assert outcome.result.id == existing.id
        assert outcome.attempt.status == AttemptStatus.EVALUATED.value
        assert outcome.attempt.total_score == existing.total_score == 1
        assert outcome.attempt.percentage == existing.percentage
        assert outcome.attempt.is_passed == existing.is_passed

        again = machine.evaluate(db_session, attempt.id)

        assert again.attempt.status == AttemptStatus.EVALUATED.value
        assert again.result.id == existing.id
        assert db_session.query(Result).count() == 1

    def test_failed_evaluation_can_be_retried(self, db_session, make_quiz, student_id):
        machine = AttemptStateMachine(grader=FlakyGrader())
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.record_answer(db_session, attempt.id, attempt.question_snapshot[0]['id'], 'A')

        with pytest.raises(EvaluationFailed):
            machine.submit(db_session, attempt.id)

        pending = machine.store.load_attempt(db_session, attempt.id)
        assert pending.status == AttemptStatus.SUBMITTED.value
        assert db_session.query(Result).count() == 0

        outcome = machine.evaluate(db_session, attempt.id)

        assert outcome.attempt.status == AttemptStatus.EVALUATED.value
        assert outcome.result.total_score == 1

    def test_in_progress_attempt_cannot_be_evaluated(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)

        with pytest.raises(AttemptNotInProgress):
            machine.evaluate(db_session, attempt.id)


class TestVoid:

    def test_void_evaluated_attempt_keeps_result(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.submit(db_session, attempt.id)

        voided = machine.void_attempt(db_session, attempt.id, 'Impersonation')

        assert voided.status == AttemptStatus.VOIDED.value
        assert voided.void_reason == 'Impersonation'
        assert db_session.query(Result).count() == 1

    def test_void_is_terminal(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.void_attempt(db_session, attempt.id, 'Duplicate account')

        with pytest.raises(InvalidTransition):
            machine.void_attempt(db_session, attempt.id, 'Again')
        with pytest.raises(AttemptNotInProgress):
            machine.submit(db_session, attempt.id)


class TestEvents:

    def test_lifecycle_is_audited(self, db_session, make_quiz, machine, student_id):
        quiz = make_quiz()
        attempt = machine.start(db_session, student_id, quiz.id)
        machine.record_tab_switch(db_session, attempt.id)
        machine.submit(db_session, attempt.id)

        events = [
            row.event for row in
            db_session.query(AuditLog).filter(AuditLog.attempt_id == attempt.id).order_by(AuditLog.created_at).all()
        ]

        assert set(events) == {
            'attempt.started', 'tab.switch.recorded', 'attempt.submitted', 'attempt.evaluated'
        }
