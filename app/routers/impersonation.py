"""
Impersonation Router - admin support console endpoints.

Provides endpoints for:
- Starting and ending impersonation sessions
- Impersonation status for the UI banner
- Searching users that may be impersonated
- Listing active sessions and the audit trail
- Emergency termination of every active session
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from app.api import deps
from app.core.config import get_settings
from app.middleware.security import limiter
from app.models.audit_log import AuditOperation
from app.schemas.audit_log import AuditEventListResponse
from app.schemas.impersonation import (
    ActiveImpersonationSession,
    EmergencyTerminateResponse,
    EndImpersonationRequest,
    EndImpersonationResponse,
    ImpersonationSearchResult,
    ImpersonationStatus,
    StartImpersonationRequest,
    StartImpersonationResponse,
)
from app.services.errors import ImpersonationError
from app.services.impersonation import ImpersonationService

router = APIRouter()
settings = get_settings()


def _http_error(exc: ImpersonationError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.post("/start", response_model=StartImpersonationResponse)
@limiter.limit(settings.impersonation_rate_limit)
async def start_impersonation(
    request: Request,
    payload: StartImpersonationRequest,
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> StartImpersonationResponse:
    """
    Start impersonating a non-admin user.

    Requires a system administrator credential. The returned token is used in
    place of the admin's own credential until the session ends or expires.
    """
    try:
        return await service.start_impersonation(credential, payload.target_user_email, payload.reason)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc


@router.post("/end", response_model=EndImpersonationResponse)
@limiter.limit(settings.impersonation_rate_limit)
async def end_impersonation(
    request: Request,
    payload: EndImpersonationRequest,
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> EndImpersonationResponse:
    """End an impersonation session and return the admin's original credential."""
    try:
        return await service.end_impersonation(payload.impersonation_token)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc


@router.get("/status", response_model=ImpersonationStatus, response_model_exclude_none=True)
async def impersonation_status(
    session_token: Optional[str] = Header(
        None,
        alias="X-Impersonation-Token",
        description="Impersonation token to check; defaults to the bearer credential",
    ),
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> ImpersonationStatus:
    return await service.get_impersonation_status(session_token or credential)


@router.get("/users", response_model=List[ImpersonationSearchResult])
async def search_users(
    search: Optional[str] = Query(None, description="Substring of name or email"),
    limit: Optional[int] = Query(None, description="Max results (clamped to 1-100)"),
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> List[ImpersonationSearchResult]:
    try:
        return await service.search_users_for_impersonation(credential, search, limit)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc


@router.get("/sessions", response_model=List[ActiveImpersonationSession])
async def list_active_sessions(
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> List[ActiveImpersonationSession]:
    try:
        return await service.list_active_sessions(credential)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc


@router.post("/emergency-terminate", response_model=EmergencyTerminateResponse)
@limiter.limit(settings.impersonation_rate_limit)
async def emergency_terminate(
    request: Request,
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> EmergencyTerminateResponse:
    """Terminate every active impersonation session system-wide."""
    try:
        return await service.emergency_terminate_all_sessions(credential)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc


@router.get("/audit", response_model=AuditEventListResponse)
async def list_audit_events(
    correlation_id: Optional[str] = Query(None, description="Filter by correlation id"),
    operation: Optional[AuditOperation] = Query(None, description="Filter by operation"),
    limit: int = Query(100, ge=1, le=500, description="Max events"),
    credential: Optional[str] = Depends(deps.get_bearer_token),
    service: ImpersonationService = Depends(deps.get_impersonation_service),
) -> AuditEventListResponse:
    try:
        return await service.list_audit_events(credential, correlation_id, operation, limit)
    except ImpersonationError as exc:
        raise _http_error(exc) from exc
