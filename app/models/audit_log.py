"""
Audit Log Model for impersonation security events.

Every state change of an impersonation session is paired with one row here:
- start / start_failed
- end (manual termination)
- timeout (expired and swept)
- emergency_terminate (global kill switch)

Rows sharing a correlation_id belong to one session lifecycle.
"""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Index, JSON, String, Text, event, func

from app.models.base import Base


class AuditOperation(str, enum.Enum):
    START = "start"
    START_FAILED = "start_failed"
    END = "end"
    TIMEOUT = "timeout"
    EMERGENCY_TERMINATE = "emergency_terminate"


class AuditLog(Base):
    """
    Append-only security audit log.

    Each entry records:
    - What operation was attempted and whether it succeeded
    - When it occurred
    - Who acted (admin user id when known)
    - Contextual input data (never session tokens)
    """
    __tablename__ = "audit_log"

    id = Column(String, primary_key=True)

    # When
    timestamp = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    # What
    operation = Column(
        Enum(AuditOperation, name="audit_operation", values_callable=lambda enum_class: [e.value for e in enum_class]),
        nullable=False,
        index=True,
    )
    success = Column(Boolean, nullable=False, default=True)
    correlation_id = Column(String, nullable=False, index=True)

    # Who
    user_id = Column(String, nullable=True, index=True)

    # Additional context
    input_data = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_correlation_timestamp", "correlation_id", "timestamp"),
        Index("idx_audit_operation_timestamp", "operation", "timestamp"),
    )


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target) -> None:
    raise ValueError("Audit log entries are append-only")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target) -> None:
    raise ValueError("Audit log entries are append-only")
