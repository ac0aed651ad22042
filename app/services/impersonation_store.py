"""
Storage access for impersonation.

SessionRepository and UserRepository are the only places that build queries for
the impersonation service. Sessions are never patched field by field: the single
write path after insert is `SessionRepository.transition`, a conditional update
that only touches rows that are still active.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.rbac import SystemRole
from app.models.company import Company
from app.models.impersonation import ImpersonationSession, SessionState
from app.models.user import User


class SessionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_token(self, session_token: str) -> Optional[ImpersonationSession]:
        result = await self.db.execute(
            select(ImpersonationSession).where(ImpersonationSession.session_token == session_token)
        )
        return result.scalar_one_or_none()

    async def count_active_for_admin(self, admin_user_id: str, now: datetime) -> int:
        result = await self.db.execute(
            select(func.count(ImpersonationSession.id)).where(
                and_(
                    ImpersonationSession.admin_user_id == admin_user_id,
                    ImpersonationSession.is_active.is_(True),
                    ImpersonationSession.expires_at > now,
                )
            )
        )
        return result.scalar() or 0

    async def list_active(self, now: datetime, admin_user_id: Optional[str] = None) -> List[ImpersonationSession]:
        """Active, non-expired sessions, newest first."""
        query = select(ImpersonationSession).where(
            and_(
                ImpersonationSession.is_active.is_(True),
                ImpersonationSession.expires_at > now,
            )
        )
        if admin_user_id:
            query = query.where(ImpersonationSession.admin_user_id == admin_user_id)

        result = await self.db.execute(query.order_by(ImpersonationSession.created_at.desc()))
        return list(result.scalars().all())

    async def list_expired(self, now: datetime) -> List[ImpersonationSession]:
        """Sessions still flagged active whose expiry has passed."""
        result = await self.db.execute(
            select(ImpersonationSession)
            .where(
                and_(
                    ImpersonationSession.is_active.is_(True),
                    ImpersonationSession.expires_at <= now,
                )
            )
            .order_by(ImpersonationSession.expires_at)
        )
        return list(result.scalars().all())

    async def add(self, session: ImpersonationSession) -> ImpersonationSession:
        self.db.add(session)
        await self.db.flush()
        return session

    async def transition(self, session: ImpersonationSession, new_state: SessionState, at: datetime) -> bool:
        """
        Move an active session into a terminal state.

        The update is guarded on is_active, so it doubles as the final re-check
        against concurrent writers. Returns False (and changes nothing) when the
        session was already terminated by someone else.
        """
        if new_state is SessionState.ACTIVE:
            raise ValueError("Sessions cannot transition back to active")

        result = await self.db.execute(
            update(ImpersonationSession)
            .where(
                and_(
                    ImpersonationSession.id == session.id,
                    ImpersonationSession.is_active.is_(True),
                )
            )
            .values(is_active=False, state=new_state, terminated_at=at)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(session)
        return result.rowcount == 1


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalars().first()

    async def lock(self, user_id: str) -> None:
        """Take a row lock on the user (no-op on backends without FOR UPDATE)."""
        await self.db.execute(select(User.id).where(User.id == user_id).with_for_update())

    async def search_non_admins(self, search_term: Optional[str], limit: int) -> List[User]:
        query = select(User).where(User.role != SystemRole.SYSTEM_ADMIN)

        term = (search_term or "").strip().lower()
        if term:
            query = query.where(
                func.lower(User.name).contains(term, autoescape=True)
                | func.lower(User.email).contains(term, autoescape=True)
            )

        result = await self.db.execute(query.order_by(User.name, User.email).limit(limit))
        return list(result.scalars().all())

    async def company_names(self, company_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        ids = {company_id for company_id in company_ids if company_id}
        if not ids:
            return {}
        result = await self.db.execute(select(Company.id, Company.name).where(Company.id.in_(ids)))
        return {row[0]: row[1] for row in result.fetchall()}
