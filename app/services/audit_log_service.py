"""
Audit Log Service for impersonation security events.

Provides methods for:
- Appending audit events (never updated or deleted)
- Listing audit events by correlation id or operation
"""

import logging
from datetime import datetime
from typing import Any, List, Optional
from uuid import uuid4

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog, AuditOperation
from app.schemas.audit_log import AuditEventListResponse, AuditEventResponse
from app.services.errors import AuditWriteFailure
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {
    "token", "session_token", "original_session_token", "impersonation_token",
    "admin_session_token", "password", "secret", "api_key",
}


class AuditLogService:
    """Append-only audit sink backed by the audit_log table."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def record(
        self,
        operation: AuditOperation,
        correlation_id: str,
        success: bool = True,
        input_data: Optional[dict] = None,
        error_message: Optional[str] = None,
        user_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> AuditLog:
        """
        Stage an audit event in the current transaction.

        The caller commits, so the event lands atomically with the state change
        it describes.

        Raises:
            AuditWriteFailure: if the row cannot be written.
        """
        log = AuditLog(
            id=str(uuid4()),
            timestamp=timestamp or self.clock(),
            operation=operation,
            success=success,
            correlation_id=correlation_id,
            user_id=user_id,
            input_data=self._clean_sensitive_data(input_data),
            error_message=error_message,
        )
        try:
            self.db.add(log)
            await self.db.flush()
        except SQLAlchemyError as exc:
            logger.error(
                "audit_write_failed",
                extra={"operation": operation.value, "correlation_id": correlation_id, "error": str(exc)},
            )
            raise AuditWriteFailure() from exc
        return log

    async def list_events(
        self,
        correlation_id: Optional[str] = None,
        operation: Optional[AuditOperation] = None,
        limit: int = 100,
    ) -> AuditEventListResponse:
        """List audit events, newest first."""
        query = select(AuditLog)
        count_query = select(func.count(AuditLog.id))

        if correlation_id:
            query = query.where(AuditLog.correlation_id == correlation_id)
            count_query = count_query.where(AuditLog.correlation_id == correlation_id)

        if operation:
            query = query.where(AuditLog.operation == operation)
            count_query = count_query.where(AuditLog.operation == operation)

        total_result = await self.db.execute(count_query)
        total = total_result.scalar() or 0

        query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)
        result = await self.db.execute(query)
        logs = result.scalars().all()

        return AuditEventListResponse(
            items=[AuditEventResponse.model_validate(log) for log in logs],
            total=total,
        )

    @staticmethod
    def _clean_sensitive_data(data: Optional[dict]) -> Optional[dict]:
        """Redact token-like fields; audit rows reference sessions by correlation id only."""
        if not data:
            return None

        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if key.lower() in SENSITIVE_KEYS:
                cleaned[key] = "[REDACTED]"
            elif isinstance(value, dict):
                cleaned[key] = AuditLogService._clean_sensitive_data(value)
            else:
                cleaned[key] = value
        return cleaned
