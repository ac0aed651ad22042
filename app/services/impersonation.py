"""
Impersonation Service

System administrators can temporarily act as another user for support:
- Start impersonation session (time-boxed, limited per admin)
- End impersonation session
- Get impersonation status for the console banner
- Search users that may be impersonated
- List active sessions for the admin dashboard
- Emergency termination of every active session
- Cleanup of expired sessions (run by the scheduler)

Every state change is committed in the same transaction as its audit event.
Failed start/end/emergency attempts are audited before the error is raised.
"""

import logging
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.rbac import SystemRole, is_system_admin
from app.core.security import TokenGenerator
from app.models.audit_log import AuditOperation
from app.models.impersonation import ImpersonationSession, SessionState
from app.schemas.audit_log import AuditEventListResponse
from app.schemas.impersonation import (
    ActiveImpersonationSession,
    CleanupResult,
    EmergencyTerminateResponse,
    EndImpersonationResponse,
    ImpersonationAdminSummary,
    ImpersonationSearchResult,
    ImpersonationStatus,
    ImpersonationTargetSummary,
    StartImpersonationResponse,
)
from app.services.audit_log_service import AuditLogService
from app.services.auth import AdminAuthorizer, ResolvedIdentity, SessionAuthorizer
from app.services.errors import (
    AlreadyTerminated,
    AuditWriteFailure,
    AuthenticationRequired,
    CannotImpersonateAdmin,
    ImpersonationError,
    InsufficientPermissions,
    MaxConcurrentSessionsExceeded,
    ReasonRequired,
    SessionNotFound,
    StoreUnavailable,
    TargetUserNotFound,
)
from app.services.impersonation_store import SessionRepository, UserRepository
from app.utils.clock import Clock, to_milliseconds, utcnow

logger = logging.getLogger(__name__)

AUDIT_EVENT_MAX_LIMIT = 500


class ImpersonationService:
    """Orchestrates impersonation sessions against the session store and audit log."""

    def __init__(
        self,
        db: AsyncSession,
        authorizer: Optional[AdminAuthorizer] = None,
        tokens: Optional[TokenGenerator] = None,
        clock: Clock = utcnow,
        settings: Optional[Settings] = None,
        audit: Optional[AuditLogService] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.authorizer = authorizer or SessionAuthorizer(db, clock)
        self.tokens = tokens or TokenGenerator()
        self.sessions = SessionRepository(db)
        self.users = UserRepository(db)
        self.audit = audit or AuditLogService(db, clock)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_impersonation(
        self,
        admin_credential: Optional[str],
        target_email: str,
        reason: str,
    ) -> StartImpersonationResponse:
        """
        Start an impersonation session.

        Args:
            admin_credential: The admin's own bearer credential
            target_email: Email of the user to impersonate
            reason: Justification stored for audit (support ticket #, etc.)

        Returns:
            StartImpersonationResponse with the impersonation token

        Raises:
            AuthenticationRequired, InsufficientPermissions, ReasonRequired,
            MaxConcurrentSessionsExceeded, TargetUserNotFound,
            CannotImpersonateAdmin, StoreUnavailable, AuditWriteFailure
        """
        admin: Optional[ResolvedIdentity] = None
        correlation_id: Optional[str] = None

        try:
            admin = await self._require_admin(admin_credential)
            if not reason or not reason.strip():
                raise ReasonRequired()
            now = self.clock()
            limit = self.settings.impersonation_max_concurrent_sessions

            try:
                # Serializes concurrent starts by the same admin on PostgreSQL
                await self.users.lock(admin.user_id)

                active_count = await self.sessions.count_active_for_admin(admin.user_id, now)
                if active_count >= limit:
                    raise MaxConcurrentSessionsExceeded(limit)

                target = await self.users.get_by_email(target_email)
                if target is None:
                    raise TargetUserNotFound()
                if is_system_admin(target.role):
                    raise CannotImpersonateAdmin()

                session_token = self.tokens.session_token()
                correlation_id = self.tokens.correlation_id()
                expires_at = now + self.settings.impersonation_session_duration

                session = await self.sessions.add(
                    ImpersonationSession(
                        id=str(uuid4()),
                        admin_user_id=admin.user_id,
                        target_user_id=target.id,
                        session_token=session_token,
                        original_session_token=admin_credential,
                        reason=reason,
                        expires_at=expires_at,
                        is_active=True,
                        state=SessionState.ACTIVE,
                        created_at=now,
                        correlation_id=correlation_id,
                    )
                )
                target_user_id = target.id
                target_user_email = target.email
            except SQLAlchemyError as exc:
                raise StoreUnavailable() from exc

            await self.audit.record(
                AuditOperation.START,
                correlation_id,
                success=True,
                input_data={
                    "admin_user_id": admin.user_id,
                    "admin_email": admin.email,
                    "target_user_id": target_user_id,
                    "target_user_email": target_user_email,
                    "reason": reason,
                    "session_id": session.id,
                    "expires_at": expires_at.isoformat(),
                },
                user_id=admin.user_id,
                timestamp=now,
            )
            await self._commit(AuditOperation.START, correlation_id)
        except ImpersonationError as exc:
            await self._record_failure(
                AuditOperation.START_FAILED,
                correlation_id,
                exc,
                input_data={"target_user_email": target_email, "reason": reason},
                user_id=admin.user_id if admin else None,
            )
            raise

        logger.info(
            "impersonation_started",
            extra={
                "admin_user_id": admin.user_id,
                "target_user_id": target_user_id,
                "correlation_id": correlation_id,
                "expires_at": expires_at.isoformat(),
            },
        )
        return StartImpersonationResponse(
            success=True,
            impersonation_token=session_token,
            correlation_id=correlation_id,
            expires=expires_at,
        )

    async def end_impersonation(self, impersonation_token: str) -> EndImpersonationResponse:
        """
        End an impersonation session and hand back the admin's original credential.

        Raises:
            SessionNotFound, AlreadyTerminated, StoreUnavailable, AuditWriteFailure
        """
        correlation_id: Optional[str] = None
        admin_user_id: Optional[str] = None
        session_id: Optional[str] = None

        try:
            now = self.clock()
            try:
                session = await self.sessions.get_by_token(impersonation_token) if impersonation_token else None
                if session is None:
                    raise SessionNotFound()

                correlation_id = session.correlation_id
                admin_user_id = session.admin_user_id
                session_id = session.id

                if not session.is_active:
                    raise AlreadyTerminated()
                # Lost a race with the sweeper or an emergency stop
                if not await self.sessions.transition(session, SessionState.ENDED_MANUAL, now):
                    raise AlreadyTerminated()
            except SQLAlchemyError as exc:
                raise StoreUnavailable() from exc

            original_session_token = session.original_session_token
            await self.audit.record(
                AuditOperation.END,
                correlation_id,
                success=True,
                input_data={
                    "admin_user_id": session.admin_user_id,
                    "target_user_id": session.target_user_id,
                    "session_id": session_id,
                    "session_duration_ms": to_milliseconds(now - session.created_at),
                    "termination_type": "manual",
                },
                user_id=admin_user_id,
                timestamp=now,
            )
            await self._commit(AuditOperation.END, correlation_id)
        except ImpersonationError as exc:
            await self._record_failure(
                AuditOperation.END,
                correlation_id,
                exc,
                input_data={"session_id": session_id, "termination_type": "manual"},
                user_id=admin_user_id,
            )
            raise

        logger.info("impersonation_ended", extra={"admin_user_id": admin_user_id, "correlation_id": correlation_id})
        return EndImpersonationResponse(success=True, original_session_token=original_session_token)

    async def get_impersonation_status(self, session_token: Optional[str]) -> ImpersonationStatus:
        """Describe the impersonation behind a token. Never raises; unknown or stale tokens are not impersonating."""
        not_impersonating = ImpersonationStatus(is_impersonating=False)
        if not session_token:
            return not_impersonating

        try:
            now = self.clock()
            session = await self.sessions.get_by_token(session_token)
            # Expiry is judged by time, not by the is_active flag the sweeper maintains
            if session is None or not session.is_active or session.expires_at <= now:
                return not_impersonating

            admin_user = await self.users.get(session.admin_user_id)
            target_user = await self.users.get(session.target_user_id)
        except SQLAlchemyError as exc:
            logger.warning("impersonation_status_unavailable", extra={"error": str(exc)})
            return not_impersonating

        if admin_user is None or target_user is None:
            logger.warning("impersonation_status_missing_user", extra={"correlation_id": session.correlation_id})
            return not_impersonating

        return ImpersonationStatus(
            is_impersonating=True,
            admin_user=ImpersonationAdminSummary.model_validate(admin_user),
            target_user=ImpersonationTargetSummary.model_validate(target_user),
            session_token=session_token,
            time_remaining_ms=max(0, to_milliseconds(session.expires_at - now)),
            correlation_id=session.correlation_id,
        )

    # ------------------------------------------------------------------
    # Admin console reads
    # ------------------------------------------------------------------

    async def search_users_for_impersonation(
        self,
        admin_credential: Optional[str],
        search_term: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ImpersonationSearchResult]:
        """Non-admin users whose name or email contains search_term, ordered by name."""
        await self._require_admin(admin_credential)

        try:
            users = await self.users.search_non_admins(search_term, self._search_limit(limit))
            company_names = await self.users.company_names(user.company_id for user in users)
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc

        return [
            ImpersonationSearchResult(
                id=user.id,
                name=user.name,
                email=user.email,
                role=user.role,
                company_name=company_names.get(user.company_id),
            )
            for user in users
        ]

    async def list_active_sessions(self, admin_credential: Optional[str]) -> List[ActiveImpersonationSession]:
        """Active sessions from every admin, for the dashboard."""
        await self._require_admin(admin_credential)
        now = self.clock()

        results = []
        try:
            for session in await self.sessions.list_active(now):
                admin_user = await self.users.get(session.admin_user_id)
                target_user = await self.users.get(session.target_user_id)
                if admin_user is None or target_user is None:
                    continue
                results.append(
                    ActiveImpersonationSession(
                        session_id=session.id,
                        admin_user=ImpersonationAdminSummary.model_validate(admin_user),
                        target_user=ImpersonationTargetSummary.model_validate(target_user),
                        reason=session.reason,
                        created_at=session.created_at,
                        expires=session.expires_at,
                        time_remaining_ms=max(0, to_milliseconds(session.expires_at - now)),
                        correlation_id=session.correlation_id,
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc
        return results

    async def list_audit_events(
        self,
        admin_credential: Optional[str],
        correlation_id: Optional[str] = None,
        operation: Optional[AuditOperation] = None,
        limit: int = 100,
    ) -> AuditEventListResponse:
        await self._require_admin(admin_credential)
        try:
            return await self.audit.list_events(
                correlation_id=correlation_id,
                operation=operation,
                limit=max(1, min(limit, AUDIT_EVENT_MAX_LIMIT)),
            )
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc

    # ------------------------------------------------------------------
    # Bulk termination
    # ------------------------------------------------------------------

    async def emergency_terminate_all_sessions(self, admin_credential: Optional[str]) -> EmergencyTerminateResponse:
        """
        Terminate every active session system-wide, regardless of which admin owns it.

        One audit event covers the whole batch.
        """
        correlation_id = self.tokens.correlation_id()
        admin: Optional[ResolvedIdentity] = None

        try:
            admin = await self._require_admin(admin_credential)
            now = self.clock()

            terminated_ids: List[str] = []
            try:
                for session in await self.sessions.list_active(now):
                    if await self.sessions.transition(session, SessionState.ENDED_EMERGENCY, now):
                        terminated_ids.append(session.id)
            except SQLAlchemyError as exc:
                raise StoreUnavailable() from exc

            await self.audit.record(
                AuditOperation.EMERGENCY_TERMINATE,
                correlation_id,
                success=True,
                input_data={
                    "admin_user_id": admin.user_id,
                    "admin_email": admin.email,
                    "sessions_terminated": len(terminated_ids),
                    "session_ids": terminated_ids,
                },
                user_id=admin.user_id,
                timestamp=now,
            )
            await self._commit(AuditOperation.EMERGENCY_TERMINATE, correlation_id)
        except ImpersonationError as exc:
            await self._record_failure(
                AuditOperation.EMERGENCY_TERMINATE,
                correlation_id,
                exc,
                input_data={"admin_user_id": admin.user_id if admin else None},
                user_id=admin.user_id if admin else None,
            )
            raise

        logger.warning(
            "impersonation_emergency_terminate",
            extra={
                "admin_user_id": admin.user_id,
                "sessions_terminated": len(terminated_ids),
                "correlation_id": correlation_id,
            },
        )
        return EmergencyTerminateResponse(
            success=True,
            sessions_terminated=len(terminated_ids),
            correlation_id=correlation_id,
        )

    async def cleanup_expired_sessions(self) -> CleanupResult:
        """
        Time out sessions whose expiry has passed.

        Sessions terminated by another writer between the query and the update
        are skipped. Each timeout is committed with its own audit event.
        """
        now = self.clock()
        try:
            expired = await self.sessions.list_expired(now)
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc

        cleaned = 0
        for session in expired:
            try:
                if not await self.sessions.transition(session, SessionState.ENDED_TIMEOUT, now):
                    continue
            except SQLAlchemyError as exc:
                await self.db.rollback()
                raise StoreUnavailable() from exc

            try:
                await self.audit.record(
                    AuditOperation.TIMEOUT,
                    session.correlation_id,
                    success=True,
                    input_data={
                        "admin_user_id": session.admin_user_id,
                        "target_user_id": session.target_user_id,
                        "session_id": session.id,
                        "session_duration_ms": to_milliseconds(now - session.created_at),
                        "termination_type": "timeout",
                    },
                    timestamp=now,
                )
            except AuditWriteFailure:
                await self.db.rollback()
                raise
            await self._commit(AuditOperation.TIMEOUT, session.correlation_id)
            cleaned += 1

        if cleaned:
            logger.info("impersonation_sessions_expired", extra={"expired_sessions_cleaned": cleaned})
        return CleanupResult(expired_sessions_cleaned=cleaned)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_admin(self, credential: Optional[str]) -> ResolvedIdentity:
        try:
            identity = await self.authorizer.resolve(credential)
        except SQLAlchemyError as exc:
            raise StoreUnavailable() from exc

        if identity is None:
            raise AuthenticationRequired()
        if identity.role is not SystemRole.SYSTEM_ADMIN:
            raise InsufficientPermissions()
        return identity

    def _search_limit(self, limit: Optional[int]) -> int:
        if not limit:
            return self.settings.impersonation_search_default_limit
        return max(1, min(limit, self.settings.impersonation_search_max_limit))

    async def _commit(self, operation: AuditOperation, correlation_id: Optional[str]) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error(
                "impersonation_commit_failed",
                extra={"operation": operation.value, "correlation_id": correlation_id, "error": str(exc)},
            )
            raise AuditWriteFailure() from exc

    async def _record_failure(
        self,
        operation: AuditOperation,
        correlation_id: Optional[str],
        error: ImpersonationError,
        input_data: dict,
        user_id: Optional[str] = None,
    ) -> None:
        """Discard the failed change and durably audit the failure."""
        await self.db.rollback()
        correlation_id = correlation_id or self.tokens.correlation_id()

        logger.warning(
            "impersonation_operation_failed",
            extra={"operation": operation.value, "correlation_id": correlation_id, "error": error.message},
        )
        try:
            await self.audit.record(
                operation,
                correlation_id,
                success=False,
                input_data={**input_data, "error": error.message},
                error_message=error.message,
                user_id=user_id,
            )
        except AuditWriteFailure:
            await self.db.rollback()
            raise
        await self._commit(operation, correlation_id)
