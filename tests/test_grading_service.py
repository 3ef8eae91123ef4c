"""
Tests for deterministic attempt grading
"""
import pytest

from assessment.services.grading_service import (
    CORRECT,
    INCORRECT,
    UNANSWERED,
    GradingService,
)


def single(q_id, correct, marks=1.0, q_type='mcq'):
    return {
        'id': q_id,
        'type': q_type,
        'marks': marks,
        'options': [{'id': o, 'text': o, 'is_correct': o == correct} for o in ('A', 'B', 'C', 'D')],
    }


def multi(q_id, correct_set, marks=1.0):
    return {
        'id': q_id,
        'type': 'mcq_multiple',
        'marks': marks,
        'options': [{'id': o, 'text': o, 'is_correct': o in correct_set} for o in ('A', 'B', 'C', 'D')],
    }


def short(q_id, reference, marks=1.0):
    return {'id': q_id, 'type': 'short_answer', 'marks': marks, 'options': [], 'correct_answer': reference}


@pytest.fixture
def grader() -> GradingService:
    return GradingService()


class TestGradingService:
    """Scoring rules per question type"""

    def test_single_choice_mixed_answers(self, grader):
        questions = [single('q1', 'A'), single('q2', 'C')]
        answers = {
            'q1': {'kind': 'single', 'option_id': 'A'},
            'q2': {'kind': 'single', 'option_id': 'B'},
        }

        output = grader.evaluate(questions, answers)

        assert output.total_score == 1
        assert output.max_score == 2
        assert output.percentage == 50
        assert output.correct_count == 1
        assert output.incorrect_count == 1
        assert output.unanswered_count == 0

    def test_partial_multi_selection_is_incorrect(self, grader):
        output = grader.evaluate(
            [multi('q1', {'A', 'C'})],
            {'q1': {'kind': 'multi', 'option_ids': ['A']}},
        )

        outcome = output.per_question[0]
        assert outcome.status == INCORRECT
        assert outcome.marks_obtained == 0

    def test_multi_selection_order_does_not_matter(self, grader):
        output = grader.evaluate(
            [multi('q1', {'A', 'C'})],
            {'q1': {'kind': 'multi', 'option_ids': ['C', 'A']}},
        )

        assert output.per_question[0].status == CORRECT

    def test_short_answer_trimmed_case_insensitive(self, grader):
        output = grader.evaluate(
            [short('q1', 'Paris')],
            {'q1': {'kind': 'text', 'text': '  paris  '}},
        )

        assert output.per_question[0].status == CORRECT
        assert output.total_score == 1

    def test_short_answer_without_reference_is_incorrect(self, grader):
        output = grader.evaluate(
            [short('q1', None)],
            {'q1': {'kind': 'text', 'text': 'anything'}},
        )

        assert output.per_question[0].status == INCORRECT

    def test_true_false(self, grader):
        question = {
            'id': 'q1',
            'type': 'true_false',
            'marks': 2,
            'options': [
                {'id': 'true', 'text': 'True', 'is_correct': False},
                {'id': 'false', 'text': 'False', 'is_correct': True},
            ],
        }

        output = grader.evaluate([question], {'q1': {'kind': 'single', 'option_id': 'false'}})

        assert output.total_score == 2

    @pytest.mark.parametrize('answer', [
        None,
        {},
        {'kind': 'single', 'option_id': ''},
        {'kind': 'multi', 'option_ids': []},
        {'kind': 'text', 'text': '   '},
    ])
    def test_blank_answers_are_unanswered(self, grader, answer):
        questions = [single('q1', 'A'), multi('q2', {'A'}), short('q3', 'x')]
        answers = {'q1': answer, 'q2': answer, 'q3': answer}

        output = grader.evaluate(questions, answers)

        assert output.unanswered_count == 3
        assert output.total_score == 0

    def test_missing_answers_are_unanswered(self, grader):
        output = grader.evaluate([single('q1', 'A'), single('q2', 'B')], {})

        assert [o.status for o in output.per_question] == [UNANSWERED, UNANSWERED]

    def test_malformed_answer_is_incorrect_not_fatal(self, grader):
        questions = [multi('q1', {'A'}), single('q2', 'B')]
        answers = {
            'q1': {'kind': 'text', 'text': 'A'},
            'q2': {'kind': 'single', 'option_id': 'B'},
        }

        output = grader.evaluate(questions, answers)

        assert output.per_question[0].status == INCORRECT
        assert output.per_question[0].malformed is True
        assert output.per_question[1].status == CORRECT
        assert output.total_score == 1

    def test_evaluation_is_deterministic(self, grader):
        questions = [single('q1', 'A', marks=1.5), multi('q2', {'B', 'D'}, marks=2.5), short('q3', 'Oxygen')]
        answers = {
            'q1': {'kind': 'single', 'option_id': 'A'},
            'q2': {'kind': 'multi', 'option_ids': ['B', 'D']},
            'q3': {'kind': 'text', 'text': 'oxygen'},
        }

        assert grader.evaluate(questions, answers) == grader.evaluate(questions, answers)

    def test_score_never_exceeds_max(self, grader):
        questions = [single('q1', 'A', marks=0.1), single('q2', 'A', marks=0.2)]
        answers = {q['id']: {'kind': 'single', 'option_id': 'A'} for q in questions}

        output = grader.evaluate(questions, answers)

        assert output.total_score <= output.max_score
        assert output.percentage == 100

    def test_zero_max_score(self, grader):
        output = grader.evaluate([single('q1', 'A', marks=0)], {'q1': {'kind': 'single', 'option_id': 'A'}})

        assert output.max_score == 0
        assert output.percentage == 0
        assert output.is_passed(0) is False

    def test_pass_threshold_is_inclusive(self, grader):
        output = grader.evaluate([single('q1', 'A'), single('q2', 'A')], {'q1': {'kind': 'single', 'option_id': 'A'}})

        assert output.is_passed(1) is True
        assert output.is_passed(1.5) is False


class TestRemarks:

    def test_remarks_reflect_outcome(self, grader):
        assert grader.generate_remarks(95, True).startswith('Passed.')
        assert grader.generate_remarks(20, False).startswith('Not passed.')
