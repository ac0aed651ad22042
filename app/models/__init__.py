"""SQLAlchemy models for the SupportSignal admin backend."""

from app.models.company import Company  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.auth_session import AuthSession  # noqa: F401
from app.models.impersonation import ImpersonationSession, SessionState  # noqa: F401
from app.models.audit_log import AuditLog, AuditOperation  # noqa: F401
