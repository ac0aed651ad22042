"""
Opaque token generation for impersonation sessions.

Tokens are drawn from the operating system CSPRNG via `secrets`; they carry no
structure beyond a short prefix that makes them recognisable in support tickets.
"""

import secrets
from typing import Optional

from app.core.config import get_settings

SESSION_TOKEN_PREFIX = "imp_"
CORRELATION_ID_PREFIX = "cor_"


class TokenGenerator:
    """Mints impersonation session tokens and audit correlation ids."""

    def __init__(self, token_bytes: Optional[int] = None, correlation_bytes: Optional[int] = None):
        settings = get_settings()
        self.token_bytes = token_bytes or settings.impersonation_token_bytes
        self.correlation_bytes = correlation_bytes or settings.impersonation_correlation_bytes

    def session_token(self) -> str:
        return SESSION_TOKEN_PREFIX + secrets.token_urlsafe(self.token_bytes)

    def correlation_id(self) -> str:
        return CORRELATION_ID_PREFIX + secrets.token_hex(self.correlation_bytes)
