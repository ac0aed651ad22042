"""
Shared pytest fixtures for the impersonation test suite.

Every test runs against a fresh in-memory SQLite database (aiosqlite) and a
frozen clock that tests advance explicitly.
"""

import os

# Settings are read at import time by several app modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.rbac import SystemRole
from app.core.security import TokenGenerator
from app.models.audit_log import AuditLog, AuditOperation
from app.models.auth_session import AuthSession
from app.models.base import Base
from app.models.company import Company
from app.models.impersonation import ImpersonationSession
from app.models.user import User
from app.services.impersonation import ImpersonationService

T0 = datetime(2026, 1, 1, 12, 0, 0)

ADMIN_TOKEN = "sess_admin_alice"
SECOND_ADMIN_TOKEN = "sess_admin_joan"
WORKER_TOKEN = "sess_worker_bob"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, milliseconds: int = 0, **kwargs) -> datetime:
        self.now += timedelta(milliseconds=milliseconds, **kwargs)
        return self.now


@dataclass(frozen=True)
class UserRef:
    """Plain snapshot of a seeded user; ORM instances expire on rollback."""

    id: str
    name: str
    email: str


@dataclass
class SeededUsers:
    admin: UserRef
    second_admin: UserRef
    john: UserRef
    jane: UserRef
    bob: UserRef
    inactive: UserRef


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db: AsyncSession, clock: FrozenClock) -> SeededUsers:
    acme = Company(id="company-acme", name="Acme Care Services", is_active=True)
    db.add(acme)

    def user(user_id: str, name: str, email: str, role: SystemRole, company_id=None, is_active=True) -> UserRef:
        db.add(User(id=user_id, name=name, email=email, role=role, company_id=company_id, is_active=is_active))
        return UserRef(id=user_id, name=name, email=email)

    seeded = SeededUsers(
        admin=user("user-alice", "Alice Admin", "alice@supportsignal.io", SystemRole.SYSTEM_ADMIN),
        second_admin=user("user-joan", "Joan Root", "joan@supportsignal.io", SystemRole.SYSTEM_ADMIN),
        john=user("user-john", "John Doe", "john.doe@example.com", SystemRole.FRONTLINE_WORKER, acme.id),
        jane=user("user-jane", "Jane Johnson", "jane.j@example.com", SystemRole.TEAM_LEAD, acme.id),
        bob=user("user-bob", "Bob Smith", "bob@example.com", SystemRole.COMPANY_ADMIN),
        inactive=user("user-ivy", "Ivy Gone", "ivy@example.com", SystemRole.FRONTLINE_WORKER, is_active=False),
    )

    expires = clock() + timedelta(days=1)
    for session_id, user_id, token in (
        ("auth-alice", seeded.admin.id, ADMIN_TOKEN),
        ("auth-joan", seeded.second_admin.id, SECOND_ADMIN_TOKEN),
        ("auth-bob", seeded.bob.id, WORKER_TOKEN),
        ("auth-ivy", seeded.inactive.id, "sess_inactive_ivy"),
    ):
        db.add(AuthSession(id=session_id, user_id=user_id, session_token=token, expires_at=expires, created_at=clock()))

    await db.commit()
    return seeded


@pytest.fixture
def service(db: AsyncSession, clock: FrozenClock, users: SeededUsers) -> ImpersonationService:
    return ImpersonationService(db, clock=clock, tokens=TokenGenerator(token_bytes=32, correlation_bytes=16))


@pytest.fixture
def audit_events(db: AsyncSession):
    """Fetch audit rows in insertion order, optionally filtered by operation."""

    async def fetch(operation: Optional[AuditOperation] = None) -> List[AuditLog]:
        query = select(AuditLog).order_by(AuditLog.timestamp, AuditLog.id)
        if operation is not None:
            query = query.where(AuditLog.operation == operation)
        result = await db.execute(query)
        return list(result.scalars().all())

    return fetch


@pytest.fixture
def sessions_in_db(db: AsyncSession):
    async def fetch() -> List[ImpersonationSession]:
        result = await db.execute(select(ImpersonationSession).order_by(ImpersonationSession.created_at))
        return list(result.scalars().all())

    return fetch
