from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from lemonade.models.base import Base


class User(Base):
    """
    A platform account shared by every tenant.

    Device-only accounts carry a synthetic email; OAuth accounts may have no
    password hash. Tenant association lives in ``UserApp``.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, nullable=True, index=True)
    password_hash = Column(String, nullable=True)
    name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)

    device_id = Column(String, unique=True, nullable=True, index=True)
    google_id = Column(String, unique=True, nullable=True, index=True)

    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    extra_data = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
    last_login_at = Column(DateTime, nullable=True)

    user_apps = relationship("UserApp", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("OrganizationMember", back_populates="user", cascade="all, delete-orphan")


class UserApp(Base):
    """Links a user to a tenant, with tenant-specific billing data."""

    __tablename__ = "user_apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    stripe_customer_id = Column(String, nullable=True)
    enabled_at = Column(DateTime, nullable=False, server_default=func.now())

    user = relationship("User", back_populates="user_apps")
    app = relationship("App", back_populates="user_apps")

    __table_args__ = (
        UniqueConstraint("user_id", "app_id", name="uq_user_app"),
    )
