"""Login session model used to resolve bearer credentials."""

from sqlalchemy import Column, DateTime, ForeignKey, String, func

from app.models.base import Base


class AuthSession(Base):
    """A regular (non-impersonation) login session issued by the auth provider."""

    __tablename__ = "auth_session"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("user.id"), nullable=False, index=True)
    session_token = Column(String, nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
