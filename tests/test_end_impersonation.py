"""Tests for ending impersonation sessions."""

import pytest
import pytest_asyncio
from sqlalchemy.orm.attributes import set_committed_value

from app.models.audit_log import AuditOperation
from app.models.impersonation import SessionState
from app.services.audit_log_service import AuditLogService
from app.services.errors import AlreadyTerminated, AuditWriteFailure, SessionNotFound
from app.services.impersonation import ImpersonationService
from tests.conftest import ADMIN_TOKEN


@pytest_asyncio.fixture
async def started(service, users):
    return await service.start_impersonation(ADMIN_TOKEN, users.john.email, "Ticket #77")


class TestEndImpersonation:
    @pytest.mark.asyncio
    async def test_returns_original_credential(self, service, started):
        result = await service.end_impersonation(started.impersonation_token)

        assert result.success is True
        assert result.original_session_token == ADMIN_TOKEN

    @pytest.mark.asyncio
    async def test_marks_session_ended_manual(self, service, clock, started, sessions_in_db):
        clock.advance(5_000)
        await service.end_impersonation(started.impersonation_token)

        session = (await sessions_in_db())[0]
        assert session.is_active is False
        assert session.state is SessionState.ENDED_MANUAL
        assert session.terminated_at == clock()

    @pytest.mark.asyncio
    async def test_records_end_audit(self, service, clock, users, started, audit_events):
        clock.advance(5_000)
        await service.end_impersonation(started.impersonation_token)

        events = await audit_events(AuditOperation.END)
        assert len(events) == 1
        event = events[0]
        assert event.success is True
        assert event.correlation_id == started.correlation_id
        assert event.user_id == users.admin.id
        assert event.input_data["session_duration_ms"] == 5_000
        assert event.input_data["termination_type"] == "manual"
        assert started.impersonation_token not in str(event.input_data)

    @pytest.mark.asyncio
    async def test_second_end_is_already_terminated(self, service, started, audit_events):
        await service.end_impersonation(started.impersonation_token)

        with pytest.raises(AlreadyTerminated) as exc_info:
            await service.end_impersonation(started.impersonation_token)

        assert exc_info.value.status_code == 409
        events = await audit_events(AuditOperation.END)
        assert sorted(event.success for event in events) == [False, True]
        failed = next(event for event in events if not event.success)
        assert failed.correlation_id == started.correlation_id
        assert failed.error_message == "Impersonation session already terminated"

    @pytest.mark.asyncio
    async def test_unknown_token(self, service, users, audit_events):
        with pytest.raises(SessionNotFound):
            await service.end_impersonation("imp_not_a_real_token")

        events = await audit_events(AuditOperation.END)
        assert len(events) == 1
        assert events[0].success is False
        assert events[0].correlation_id.startswith("cor_")

    @pytest.mark.asyncio
    async def test_empty_token(self, service, users):
        with pytest.raises(SessionNotFound):
            await service.end_impersonation("")

    @pytest.mark.asyncio
    async def test_expired_but_not_swept_session_can_still_be_ended(self, service, clock, started, sessions_in_db):
        clock.advance(minutes=45)
        await service.end_impersonation(started.impersonation_token)

        session = (await sessions_in_db())[0]
        assert session.state is SessionState.ENDED_MANUAL

    @pytest.mark.asyncio
    async def test_losing_race_to_sweeper_is_already_terminated(self, service, clock, started, monkeypatch):
        clock.advance(minutes=31)
        session = await service.sessions.get_by_token(started.impersonation_token)

        # Sweeper lands first; the handle we fetched still looks active
        await service.cleanup_expired_sessions()
        set_committed_value(session, "is_active", True)

        async def stale_lookup(token):
            return session

        monkeypatch.setattr(service.sessions, "get_by_token", stale_lookup)
        with pytest.raises(AlreadyTerminated):
            await service.end_impersonation(started.impersonation_token)


class FailOnSuccessfulEnd(AuditLogService):
    """Audit sink whose success record for an end fails to write."""

    async def record(self, operation, correlation_id, **kwargs):
        if operation is AuditOperation.END and kwargs.get("success", True):
            raise AuditWriteFailure()
        return await super().record(operation, correlation_id, **kwargs)


class TestEndAuditFailures:
    @pytest.mark.asyncio
    async def test_failed_audit_write_keeps_session_active(self, db, clock, users, audit_events, sessions_in_db):
        service = ImpersonationService(db, clock=clock, audit=FailOnSuccessfulEnd(db, clock))
        started = await service.start_impersonation(ADMIN_TOKEN, users.john.email, "reason")

        with pytest.raises(AuditWriteFailure):
            await service.end_impersonation(started.impersonation_token)

        session = (await sessions_in_db())[0]
        assert session.is_active is True
        assert session.state is SessionState.ACTIVE
        assert session.terminated_at is None

        events = await audit_events(AuditOperation.END)
        assert len(events) == 1
        assert events[0].success is False
        assert events[0].correlation_id == started.correlation_id
