"""
Attempt event sink - audit log rows plus Redis pub/sub for analytics consumers
"""
import json
import logging
from typing import Any, Dict, Optional

import redis
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from assessment.config import settings
from assessment.models import AuditLog, QuizAttempt
from assessment.utils.clock import utcnow

logger = logging.getLogger(__name__)

ATTEMPT_STARTED = "attempt.started"
ATTEMPT_SUBMITTED = "attempt.submitted"
ATTEMPT_EVALUATED = "attempt.evaluated"
ATTEMPT_VOIDED = "attempt.voided"
TAB_SWITCH_RECORDED = "tab.switch.recorded"


class EventPublisher:
    """
    Emits attempt lifecycle events

    Events are fire-and-forget: a failing audit write or an unreachable Redis
    is logged and never fails the operation that already committed.
    """

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None):
        url = settings.REDIS_URL if redis_url is None else redis_url
        self.channel = channel or settings.EVENT_CHANNEL
        self.redis_client = None

        if not url:
            logger.info("REDIS_URL not set. Event publishing disabled.")
            return

        try:
            self.redis_client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            # Test connection
            self.redis_client.ping()
            logger.info("Redis connection established for event publishing")
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed: {str(e)}. Event publishing disabled.")
            self.redis_client = None

    def emit(
        self,
        db: Session,
        event: str,
        attempt: QuizAttempt,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        """
        Record an event for an attempt

        Must be called after the state change it describes has been committed.
        """
        payload = {
            "event": event,
            "attempt_id": str(attempt.id),
            "student_id": str(attempt.student_id),
            "quiz_id": str(attempt.quiz_id),
            "status": attempt.status,
            "details": details or {},
            "timestamp": utcnow().isoformat(),
        }

        self._write_audit_log(db, payload, attempt, ip_address, user_agent)
        self._publish(payload)

    def _write_audit_log(
        self,
        db: Session,
        payload: Dict[str, Any],
        attempt: QuizAttempt,
        ip_address: Optional[str],
        user_agent: Optional[str]
    ) -> bool:
        try:
            db.add(AuditLog(
                event=payload["event"],
                student_id=attempt.student_id,
                attempt_id=attempt.id,
                quiz_id=attempt.quiz_id,
                details=payload["details"],
                ip_address=ip_address or attempt.ip_address,
                user_agent=user_agent or attempt.user_agent,
                status="success",
            ))
            db.commit()
            return True
        except SQLAlchemyError as e:
            logger.error(f"Audit log write failed for {payload['event']}: {str(e)}")
            db.rollback()
            return False

    def _publish(self, payload: Dict[str, Any]) -> bool:
        if not self.redis_client:
            return False

        try:
            self.redis_client.publish(self.channel, json.dumps(payload))
            logger.debug(f"Event published: {payload['event']} ({payload['attempt_id']})")
            return True
        except redis.RedisError as e:
            logger.error(f"Event publish error: {str(e)}")
            return False


# Global instance
event_publisher = EventPublisher()
