"""Impersonation session model for administrator support access."""

import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, String, Text, event
from sqlalchemy.orm import relationship

from app.models.base import Base


class SessionState(str, enum.Enum):
    ACTIVE = "active"
    ENDED_MANUAL = "ended_manual"
    ENDED_TIMEOUT = "ended_timeout"
    ENDED_EMERGENCY = "ended_emergency"


class ImpersonationSession(Base):
    """Tracks when a system administrator acts as another user.

    Rows are a ledger: they are created active, terminated exactly once and never
    deleted, so the history stays available for compliance review.
    """

    __tablename__ = "impersonation_session"

    id = Column(String, primary_key=True)

    # Who impersonated whom
    admin_user_id = Column(String, ForeignKey("user.id"), nullable=False, index=True)
    target_user_id = Column(String, ForeignKey("user.id"), nullable=False, index=True)

    # Session details
    session_token = Column(String, nullable=False, unique=True, index=True, comment="Bearer token for the impersonated client")
    original_session_token = Column(String, nullable=False, comment="Admin credential restored when impersonation ends")
    expires_at = Column(DateTime, nullable=False)

    # Lifecycle
    is_active = Column(Boolean, nullable=False, default=True)
    state = Column(
        Enum(SessionState, name="impersonation_state", values_callable=lambda enum_class: [e.value for e in enum_class]),
        nullable=False,
        default=SessionState.ACTIVE,
    )
    created_at = Column(DateTime, nullable=False)
    terminated_at = Column(DateTime, nullable=True)

    # Audit
    reason = Column(Text, nullable=False, comment="Why impersonation was needed (support ticket #, etc.)")
    correlation_id = Column(String, nullable=False, index=True)

    # Relationships
    admin = relationship("User", foreign_keys=[admin_user_id])
    target = relationship("User", foreign_keys=[target_user_id])

    __table_args__ = (
        Index("idx_impersonation_admin_active", "admin_user_id", "is_active"),
        Index("idx_impersonation_active_expires", "is_active", "expires_at"),
    )


@event.listens_for(ImpersonationSession, "before_delete")
def _refuse_session_delete(mapper, connection, target) -> None:
    raise ValueError("Impersonation sessions are never deleted; terminate them instead")
