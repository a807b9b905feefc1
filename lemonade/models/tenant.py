from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, func
from sqlalchemy.orm import relationship

from lemonade.models.base import Base


class App(Base):
    """A tenant: one client application sharing the platform, keyed by API key."""

    __tablename__ = "apps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False, index=True)
    api_key = Column(String, unique=True, nullable=False, index=True)
    api_secret = Column(String, nullable=True)
    allowed_origins = Column(JSON, nullable=True)
    webhook_url = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    user_apps = relationship("UserApp", back_populates="app", cascade="all, delete-orphan")
    organizations = relationship("Organization", back_populates="app", cascade="all, delete-orphan")
