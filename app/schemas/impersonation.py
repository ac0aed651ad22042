"""
Impersonation Schemas for API requests/responses.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.core.rbac import SystemRole


class StartImpersonationRequest(BaseModel):
    target_user_email: str = Field(..., min_length=1, max_length=320)
    reason: str = Field(..., min_length=1, max_length=2000)


class StartImpersonationResponse(BaseModel):
    success: bool = True
    impersonation_token: str
    correlation_id: str
    expires: datetime


class EndImpersonationRequest(BaseModel):
    impersonation_token: str = Field(..., min_length=1)


class EndImpersonationResponse(BaseModel):
    success: bool = True
    original_session_token: str


class ImpersonationAdminSummary(BaseModel):
    id: str
    name: str
    email: str

    model_config = {"from_attributes": True}


class ImpersonationTargetSummary(ImpersonationAdminSummary):
    role: SystemRole


class ImpersonationStatus(BaseModel):
    """Status for the impersonation banner; only is_impersonating is set when inactive."""
    is_impersonating: bool
    admin_user: Optional[ImpersonationAdminSummary] = None
    target_user: Optional[ImpersonationTargetSummary] = None
    session_token: Optional[str] = None
    time_remaining_ms: Optional[int] = None
    correlation_id: Optional[str] = None


class ImpersonationSearchResult(BaseModel):
    id: str
    name: str
    email: str
    role: SystemRole
    company_name: Optional[str] = None


class ActiveImpersonationSession(BaseModel):
    session_id: str
    admin_user: ImpersonationAdminSummary
    target_user: ImpersonationTargetSummary
    reason: str
    created_at: datetime
    expires: datetime
    time_remaining_ms: int
    correlation_id: str


class EmergencyTerminateResponse(BaseModel):
    success: bool = True
    sessions_terminated: int
    correlation_id: str


class CleanupResult(BaseModel):
    expired_sessions_cleaned: int

