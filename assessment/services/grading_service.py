"""
Quiz grading service - deterministic scoring of a frozen question set
Single choice / True-False: exact option match
Multi choice: exact set match, no partial credit
Short answer: trimmed, case-insensitive exact match
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from assessment.exceptions import MalformedAnswer
from assessment.models.quiz import QuestionType

logger = logging.getLogger(__name__)

CORRECT = "correct"
INCORRECT = "incorrect"
UNANSWERED = "unanswered"


@dataclass(frozen=True)
class QuestionOutcome:
    """Grading outcome for one question"""
    question_id: str
    status: str
    marks_obtained: float
    max_marks: float
    malformed: bool = False

    @property
    def is_correct(self) -> bool:
        return self.status == CORRECT


@dataclass(frozen=True)
class ScoringOutput:
    """Aggregate grading outcome for one attempt"""
    per_question: List[QuestionOutcome] = field(default_factory=list)
    total_score: float = 0.0
    max_score: float = 0.0
    percentage: float = 0.0
    correct_count: int = 0
    incorrect_count: int = 0
    unanswered_count: int = 0

    def is_passed(self, passing_marks: float) -> bool:
        # A quiz worth nothing cannot be passed
        return self.max_score > 0 and self.total_score >= passing_marks


class GradingService:
    """
    Service for grading submitted attempts

    evaluate() is a pure function of (questions, answers): no I/O, no clock,
    same input always gives the same output, so evaluation can be retried safely.
    """

    def evaluate(
        self,
        questions: List[Dict[str, Any]],
        answers: Dict[str, Any]
    ) -> ScoringOutput:
        """
        Grade a frozen question set against recorded answers

        Args:
            questions: Frozen snapshot [{id, type, marks, options, correct_answer}]
            answers: Tagged answers keyed by question id

        Returns:
            ScoringOutput with per-question outcomes and totals
        """
        outcomes = []
        total_score = 0.0
        max_score = 0.0
        counts = {CORRECT: 0, INCORRECT: 0, UNANSWERED: 0}

        for question in questions:
            q_id = question["id"]
            points = float(question.get("marks") or 0)
            answer = answers.get(q_id)

            malformed = False
            try:
                status = self._grade_question(question, answer)
            except MalformedAnswer as e:
                logger.warning(f"Malformed answer graded as incorrect: {e.details}")
                status = INCORRECT
                malformed = True

            marks_obtained = points if status == CORRECT else 0.0
            total_score += marks_obtained
            max_score += points
            counts[status] += 1

            outcomes.append(QuestionOutcome(
                question_id=q_id,
                status=status,
                marks_obtained=marks_obtained,
                max_marks=points,
                malformed=malformed,
            ))

        total_score = round(total_score, 2)
        max_score = round(max_score, 2)
        percentage = round(total_score / max_score * 100, 2) if max_score > 0 else 0.0

        logger.info(
            f"Attempt graded: {total_score:.2f}/{max_score:.2f} "
            f"(correct={counts[CORRECT]}, incorrect={counts[INCORRECT]}, "
            f"unanswered={counts[UNANSWERED]})"
        )

        return ScoringOutput(
            per_question=outcomes,
            total_score=total_score,
            max_score=max_score,
            percentage=percentage,
            correct_count=counts[CORRECT],
            incorrect_count=counts[INCORRECT],
            unanswered_count=counts[UNANSWERED],
        )

    def _grade_question(self, question: Dict[str, Any], answer: Any) -> str:
        if self._is_blank(answer):
            return UNANSWERED

        q_type = question.get("type")

        if q_type in (QuestionType.SINGLE_CHOICE.value, QuestionType.TRUE_FALSE.value):
            is_correct = self._grade_single_choice(question, answer)
        elif q_type == QuestionType.MULTI_CHOICE.value:
            is_correct = self._grade_multi_choice(question, answer)
        elif q_type == QuestionType.SHORT_ANSWER.value:
            is_correct = self._grade_short_answer(question, answer)
        else:
            raise MalformedAnswer(question.get("id"), str(q_type), self._kind(answer))

        return CORRECT if is_correct else INCORRECT

    def _grade_single_choice(self, question: Dict[str, Any], answer: Any) -> bool:
        """
        Grade single choice / true-false with exact match

        Correct iff the selected option id is the one flagged correct.
        """
        if self._kind(answer) != "single" or not isinstance(answer.get("option_id"), str):
            raise MalformedAnswer(question["id"], question["type"], self._kind(answer))

        return {answer["option_id"]} == self._correct_option_ids(question)

    def _grade_multi_choice(self, question: Dict[str, Any], answer: Any) -> bool:
        """
        Grade multi choice with exact set match

        A partial selection is wrong; there is no partial credit.
        """
        option_ids = answer.get("option_ids") if self._kind(answer) == "multi" else None
        if not isinstance(option_ids, list) or not all(isinstance(o, str) for o in option_ids):
            raise MalformedAnswer(question["id"], question["type"], self._kind(answer))

        return set(option_ids) == self._correct_option_ids(question)

    def _grade_short_answer(self, question: Dict[str, Any], answer: Any) -> bool:
        """
        Grade short answer against the reference text

        Exact match after trimming and case folding; no fuzzy matching.
        """
        if self._kind(answer) != "text" or not isinstance(answer.get("text"), str):
            raise MalformedAnswer(question["id"], question["type"], self._kind(answer))

        reference = question.get("correct_answer")
        if not reference or not str(reference).strip():
            return False

        return answer["text"].strip().casefold() == str(reference).strip().casefold()

    @staticmethod
    def _correct_option_ids(question: Dict[str, Any]) -> set:
        return {
            opt["id"] for opt in question.get("options") or []
            if opt.get("is_correct")
        }

    @staticmethod
    def _kind(answer: Any) -> Optional[str]:
        return answer.get("kind") if isinstance(answer, dict) else type(answer).__name__

    @staticmethod
    def _is_blank(answer: Any) -> bool:
        """Blank answers count as unanswered whatever their shape"""
        if answer is None:
            return True
        if not isinstance(answer, dict):
            return answer in ("", [])
        if not answer:
            return True

        kind = answer.get("kind")
        if kind == "single":
            return not answer.get("option_id")
        if kind == "multi":
            return not answer.get("option_ids")
        if kind == "text":
            text = answer.get("text")
            return text is None or (isinstance(text, str) and not text.strip())
        return False

    def generate_remarks(self, percentage: float, is_passed: bool) -> str:
        """Generate the remark stored on the Result"""

        if percentage >= 90:
            remark = "Excellent work! Strong understanding across all questions."
        elif percentage >= 75:
            remark = "Good performance! You have a solid grasp of the material."
        elif percentage >= 60:
            remark = "Fair performance. Review the questions you missed."
        else:
            remark = "Needs improvement. Focus on understanding core concepts."

        outcome = "Passed." if is_passed else "Not passed."
        return f"{outcome} {remark}"


# Global instance
grading_service = GradingService()
