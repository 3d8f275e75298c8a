"""Report configuration and template models."""

from sqlalchemy import String, Text, DateTime, Boolean, Enum as SQLEnum, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional
import enum
import uuid

from .base import Base


class ScheduleType(str, enum.Enum):
    """How a report is triggered."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class ReportFrequency(str, enum.Enum):
    """Report frequency options."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class ReportTemplate(Base):
    """Read-only catalog of starter reports."""

    __tablename__ = "astra_report_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt_template: Mapped[str] = mapped_column(Text)
    default_schedule: Mapped[ReportFrequency] = mapped_column(
        SQLEnum(ReportFrequency, values_callable=_enum_values, native_enum=False),
        default=ReportFrequency.DAILY
    )
    default_time: Mapped[str] = mapped_column(String(5), default="07:00")
    default_day: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<ReportTemplate(id={self.id}, name={self.name})>"


class UserReport(Base):
    """A user's saved report definition (prompt plus schedule)."""

    __tablename__ = "astra_reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    report_template_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("astra_report_templates.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(255))
    prompt: Mapped[str] = mapped_column(Text)
    schedule_type: Mapped[ScheduleType] = mapped_column(
        SQLEnum(ScheduleType, values_callable=_enum_values, native_enum=False),
        default=ScheduleType.SCHEDULED
    )
    schedule_frequency: Mapped[ReportFrequency] = mapped_column(
        SQLEnum(ReportFrequency, values_callable=_enum_values, native_enum=False),
        default=ReportFrequency.DAILY
    )
    schedule_time: Mapped[str] = mapped_column(String(5), default="07:00")
    schedule_day: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    visualization_mode: Mapped[str] = mapped_column(String(20), default="text")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="reports")
    template = relationship("ReportTemplate", lazy="joined")

    @property
    def is_scheduled(self) -> bool:
        return self.schedule_type == ScheduleType.SCHEDULED

    def __repr__(self) -> str:
        return f"<UserReport(id={self.id}, title={self.title}, schedule={self.schedule_type})>"
