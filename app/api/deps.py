import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.services.impersonation import ImpersonationService

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "supportsignal_token"

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


async def get_bearer_token(
    request: Request,
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
) -> Optional[str]:
    """
    The caller's credential from the session cookie or Authorization header.

    Missing credentials are not rejected here; the impersonation service
    decides, so that refused attempts still reach the audit log.
    """
    return request.cookies.get(SESSION_COOKIE_NAME) or token


async def get_impersonation_service(db: AsyncSession = Depends(get_db)) -> ImpersonationService:
    return ImpersonationService(db)
