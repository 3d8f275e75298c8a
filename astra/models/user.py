"""User model mirrored from the hosted auth platform."""

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional
import uuid

from .base import Base


class User(Base):
    """Authenticated user owning report configurations."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # Relationships
    reports = relationship("UserReport", back_populates="user", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        """Profile name, then email local part, then a generic label."""
        if self.name:
            return self.name
        if self.email:
            return self.email.split("@")[0]
        return "User"

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
