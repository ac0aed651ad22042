"""
RBAC (Role-Based Access Control) Definitions

This module defines the system roles recognised by the backend.
Only system administrators may start, inspect or terminate impersonation sessions,
and a system administrator can never be an impersonation target.
"""

from enum import Enum
from typing import Optional


class SystemRole(str, Enum):
    """
    System-wide roles.
    Stored on the user record; values match what the web client sends.
    """
    SYSTEM_ADMIN = "system_admin"  # SupportSignal platform administrator
    COMPANY_ADMIN = "company_admin"  # Organisation administrator
    TEAM_LEAD = "team_lead"  # Supervises frontline workers, reviews incidents
    FRONTLINE_WORKER = "frontline_worker"  # Captures incident reports


def parse_role(value: "SystemRole | str | None") -> Optional[SystemRole]:
    """Coerce a stored or submitted role value into a SystemRole, or None if unknown."""
    if value is None:
        return None
    if isinstance(value, SystemRole):
        return value
    try:
        return SystemRole(value)
    except ValueError:
        return None


def is_system_admin(role: "SystemRole | str | None") -> bool:
    return parse_role(role) is SystemRole.SYSTEM_ADMIN
