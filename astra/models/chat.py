"""Append-only chat log shared by chat modes, including report runs."""

from sqlalchemy import String, Text, Integer, DateTime, Boolean, JSON
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
import enum
import uuid

from .base import Base


class ChatMode(str, enum.Enum):
    """Chat surfaces writing to the log."""
    REPORTS = "reports"
    PRIVATE = "private"
    TEAM = "team"


class MessageType(str, enum.Enum):
    """Author of a chat log row."""
    USER = "user"
    ASTRA = "astra"
    SYSTEM = "system"


class AstraChat(Base):
    """One chat log row. Report executions are rows with mode=reports."""

    __tablename__ = "astra_chats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # No foreign key to astra_reports: deleting a report keeps its history
    user_id: Mapped[str] = mapped_column(String(36), index=True)
    user_email: Mapped[str] = mapped_column(String(255), default="")
    user_name: Mapped[str] = mapped_column(String(255), default="")
    message: Mapped[str] = mapped_column(Text)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    response_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    tokens_used: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    model_used: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # "metadata" is reserved on declarative classes
    message_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    visualization: Mapped[bool] = mapped_column(Boolean, default=False)
    visualization_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mode: Mapped[str] = mapped_column(String(20), default=ChatMode.PRIVATE.value, index=True)
    message_type: Mapped[str] = mapped_column(String(20), default=MessageType.USER.value)
    astra_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<AstraChat(id={self.id}, mode={self.mode}, type={self.message_type})>"
