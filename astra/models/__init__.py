"""Database models."""

from .base import Base
from .user import User
from .report import ReportTemplate, UserReport, ScheduleType, ReportFrequency
from .chat import AstraChat, ChatMode, MessageType

__all__ = [
    "Base",
    "User",
    "ReportTemplate",
    "UserReport",
    "ScheduleType",
    "ReportFrequency",
    "AstraChat",
    "ChatMode",
    "MessageType",
]
