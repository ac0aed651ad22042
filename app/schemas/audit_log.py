"""
Audit Log Schemas for API responses.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.models.audit_log import AuditOperation


class AuditEventResponse(BaseModel):
    """Response schema for a single audit log entry."""
    id: str
    timestamp: datetime
    operation: AuditOperation
    success: bool
    correlation_id: str
    user_id: Optional[str] = None
    input_data: Optional[dict] = None
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class AuditEventListResponse(BaseModel):
    """List of audit log entries, newest first."""
    items: List[AuditEventResponse]
    total: int
