"""
Custom exceptions for the quiz attempt service

Error classes:
- Precondition errors: caller errors, surfaced verbatim, never retried
- Not-found errors: caller errors, surfaced verbatim
- Computation errors: recovered per question inside the grader
- Consistency errors: retry-after-partial-failure races, reported as success
- Evaluation failures: attempt stays submitted, evaluation can be retried

Storage errors (SQLAlchemyError) are not wrapped and propagate unchanged.
"""
from typing import Any, Dict, Optional


class AssessmentError(Exception):
    """Base exception for all attempt engine errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Precondition Errors (caller errors)
# ============================================

class PreconditionError(AssessmentError):
    """The caller asked for something the current state does not allow"""

    status_code = 409


class QuizNotAvailable(PreconditionError):
    """Quiz is inactive, unpublished or outside its time window"""

    status_code = 400

    def __init__(self, quiz_id: Any, reason: str = "Quiz is not available at this time"):
        super().__init__(
            reason,
            code="QUIZ_NOT_AVAILABLE",
            details={"quiz_id": str(quiz_id)}
        )


class AttemptLimitExceeded(PreconditionError):
    """Student has used every attempt the quiz allows"""

    def __init__(self, quiz_id: Any, max_attempts: int):
        super().__init__(
            "You have already used all your attempts for this quiz",
            code="ATTEMPT_LIMIT_EXCEEDED",
            details={"quiz_id": str(quiz_id), "max_attempts": max_attempts}
        )


class DuplicateActiveAttempt(PreconditionError):
    """Student already has an attempt in progress for this quiz"""

    def __init__(self, quiz_id: Any, attempt_id: Any = None):
        details = {"quiz_id": str(quiz_id)}
        if attempt_id is not None:
            details["attempt_id"] = str(attempt_id)
        super().__init__(
            "You already have an attempt in progress for this quiz",
            code="DUPLICATE_ACTIVE_ATTEMPT",
            details=details
        )


class AttemptNotInProgress(PreconditionError):
    """Attempt was already submitted, evaluated or voided"""

    def __init__(self, attempt_id: Any, status: Optional[str] = None,
                 message: str = "This attempt is no longer active"):
        details = {"attempt_id": str(attempt_id)}
        if status:
            details["status"] = status
        super().__init__(message, code="ATTEMPT_NOT_IN_PROGRESS", details=details)


class QuestionNotInAttempt(PreconditionError):
    """Question id is not part of the attempt's frozen question set"""

    status_code = 400

    def __init__(self, attempt_id: Any, question_id: Any):
        super().__init__(
            "This question is not part of your attempt",
            code="QUESTION_NOT_IN_ATTEMPT",
            details={"attempt_id": str(attempt_id), "question_id": str(question_id)}
        )


class InvalidTransition(PreconditionError):
    """Requested state change is not in the transition table"""

    def __init__(self, attempt_id: Any, current: str, target: str):
        super().__init__(
            f"Cannot move attempt from '{current}' to '{target}'",
            code="INVALID_TRANSITION",
            details={"attempt_id": str(attempt_id), "current": current, "target": target}
        )


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(AssessmentError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any, code: str):
        super().__init__(
            f"{resource_type} not found",
            code=code,
            details={"resource_type": resource_type, "resource_id": str(resource_id)}
        )


class AttemptNotFound(ResourceNotFoundError):
    def __init__(self, attempt_id: Any):
        super().__init__("Quiz attempt", attempt_id, code="ATTEMPT_NOT_FOUND")


class QuizNotFound(ResourceNotFoundError):
    def __init__(self, quiz_id: Any):
        super().__init__("Quiz", quiz_id, code="QUIZ_NOT_FOUND")


class ResultNotFound(ResourceNotFoundError):
    def __init__(self, result_id: Any):
        super().__init__("Result", result_id, code="RESULT_NOT_FOUND")


# ============================================
# Computation Errors (recovered inside the grader)
# ============================================

class MalformedAnswer(AssessmentError):
    """Answer shape does not match the question type"""

    status_code = 422

    def __init__(self, question_id: Any, question_type: str, answer_kind: Optional[str]):
        super().__init__(
            f"Answer of kind '{answer_kind}' cannot be graded as '{question_type}'",
            code="MALFORMED_ANSWER",
            details={
                "question_id": str(question_id),
                "question_type": question_type,
                "answer_kind": answer_kind,
            }
        )


# ============================================
# Consistency Errors
# ============================================

class ResultAlreadyExists(AssessmentError):
    """A Result already references this attempt"""

    status_code = 200

    def __init__(self, attempt_id: Any):
        super().__init__(
            "Result already exists for this attempt",
            code="RESULT_ALREADY_EXISTS",
            details={"attempt_id": str(attempt_id)}
        )


class EvaluationFailed(AssessmentError):
    """Scoring failed; the attempt stays submitted and can be re-evaluated"""

    status_code = 500

    def __init__(self, attempt_id: Any, reason: str):
        super().__init__(
            "Your answers were submitted but could not be scored yet",
            code="EVALUATION_FAILED",
            details={"attempt_id": str(attempt_id), "reason": reason}
        )
