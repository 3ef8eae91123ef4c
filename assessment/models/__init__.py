"""
Database models package
"""
from assessment.models.quiz import Quiz, Question, QuestionType
from assessment.models.quiz_attempt import QuizAttempt, AttemptAnswer, AttemptStatus, SubmitReason
from assessment.models.result import Result
from assessment.models.audit_log import AuditLog

__all__ = [
    "Quiz", "Question", "QuestionType",
    "QuizAttempt", "AttemptAnswer", "AttemptStatus", "SubmitReason",
    "Result", "AuditLog",
]
