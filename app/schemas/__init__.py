"""Pydantic schemas."""

from app.schemas.impersonation import (  # noqa: F401
    ActiveImpersonationSession,
    CleanupResult,
    EmergencyTerminateResponse,
    EndImpersonationRequest,
    EndImpersonationResponse,
    ImpersonationSearchResult,
    ImpersonationStatus,
    StartImpersonationRequest,
    StartImpersonationResponse,
)
from app.schemas.audit_log import AuditEventListResponse, AuditEventResponse  # noqa: F401
