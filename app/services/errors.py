"""
Impersonation error taxonomy.

Each error carries a message meant for direct display in the admin console and
the HTTP status the router answers with.
"""

from typing import Optional


class ImpersonationError(Exception):
    """Base exception for impersonation operations."""

    status_code: int = 400
    default_message: str = "Impersonation request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(ImpersonationError):
    status_code = 401
    default_message = "Authentication required"


class InsufficientPermissions(ImpersonationError):
    status_code = 403
    default_message = "Insufficient permissions: System administrator role required"


class TargetUserNotFound(ImpersonationError):
    status_code = 404
    default_message = "Target user not found"


class CannotImpersonateAdmin(ImpersonationError):
    status_code = 403
    default_message = "Cannot impersonate other system administrators"


class MaxConcurrentSessionsExceeded(ImpersonationError):
    status_code = 409

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Maximum concurrent impersonation sessions reached ({limit})")


class SessionNotFound(ImpersonationError):
    status_code = 404
    default_message = "Impersonation session not found"


class AlreadyTerminated(ImpersonationError):
    status_code = 409
    default_message = "Impersonation session already terminated"


class AuditWriteFailure(ImpersonationError):
    """Raised when an audit record (and the change it describes) could not be committed."""

    status_code = 500
    default_message = "Failed to record impersonation audit event"


class StoreUnavailable(ImpersonationError):
    status_code = 503
    default_message = "Impersonation session store is unavailable"


class ReasonRequired(ImpersonationError):
    status_code = 400
    default_message = "A reason is required to start impersonation"
