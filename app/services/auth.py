"""
Bearer credential resolution.

The impersonation service only needs to know who is behind a credential and
which role they hold. `SessionAuthorizer` answers that from the database:
an active impersonation token resolves to the impersonated (target) user,
anything else is looked up as a regular login session.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import SystemRole, parse_role
from app.models.auth_session import AuthSession
from app.models.impersonation import ImpersonationSession
from app.models.user import User
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedIdentity:
    user_id: str
    role: SystemRole
    email: str
    is_impersonating: bool = False
    original_admin_id: Optional[str] = None
    correlation_id: Optional[str] = None


class AdminAuthorizer(Protocol):
    async def resolve(self, credential: Optional[str]) -> Optional[ResolvedIdentity]:
        ...


class SessionAuthorizer:
    """Resolve bearer credentials against impersonation and login sessions."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def resolve(self, credential: Optional[str]) -> Optional[ResolvedIdentity]:
        if not credential or not credential.strip():
            return None

        now = self.clock()

        result = await self.db.execute(
            select(ImpersonationSession).where(
                and_(
                    ImpersonationSession.session_token == credential,
                    ImpersonationSession.is_active.is_(True),
                    ImpersonationSession.expires_at > now,
                )
            )
        )
        impersonation = result.scalar_one_or_none()
        if impersonation:
            target = await self.db.get(User, impersonation.target_user_id)
            if target and target.is_active:
                return self._identity(
                    target,
                    is_impersonating=True,
                    original_admin_id=impersonation.admin_user_id,
                    correlation_id=impersonation.correlation_id,
                )

        result = await self.db.execute(
            select(AuthSession).where(
                and_(
                    AuthSession.session_token == credential,
                    AuthSession.expires_at > now,
                )
            )
        )
        session = result.scalar_one_or_none()
        if not session:
            return None

        user = await self.db.get(User, session.user_id)
        if not user or not user.is_active:
            logger.warning("credential_user_unavailable", extra={"user_id": session.user_id})
            return None
        return self._identity(user)

    @staticmethod
    def _identity(user: User, **kwargs) -> Optional[ResolvedIdentity]:
        role = parse_role(user.role)
        if role is None:
            logger.warning("credential_user_unknown_role", extra={"user_id": user.id})
            return None
        return ResolvedIdentity(user_id=user.id, role=role, email=user.email, **kwargs)
