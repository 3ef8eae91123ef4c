"""
AuditLog model - append-only record of attempt lifecycle events
"""
from sqlalchemy import Column, DateTime, Index, String, Uuid, func
from assessment.database import Base, JSONType
import uuid


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_student_created", "student_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event = Column(String(50), nullable=False, index=True)  # attempt.started, ...
    student_id = Column(Uuid, index=True)
    attempt_id = Column(Uuid, index=True)
    quiz_id = Column(Uuid)
    details = Column(JSONType)
    ip_address = Column(String(64))
    user_agent = Column(String(500))
    status = Column(String(10), default="success")
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<AuditLog(event={self.event}, attempt_id={self.attempt_id})>"
