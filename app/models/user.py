from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String, func
from sqlalchemy.orm import relationship

from app.core.rbac import SystemRole
from app.models.base import Base


class User(Base):
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(
        Enum(SystemRole, name="system_role", values_callable=lambda enum_class: [e.value for e in enum_class]),
        nullable=False,
        default=SystemRole.FRONTLINE_WORKER,
    )

    # Users without an organisation (e.g. platform staff) have no company
    company_id = Column(String, ForeignKey("company.id"), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="users")
