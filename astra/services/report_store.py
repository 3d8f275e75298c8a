"""Report configuration store scoped to a single user."""

from datetime import datetime
from typing import Dict, Any, List, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ValidationError, NotFoundError, PersistenceError
from ..models.chat import AstraChat, ChatMode, MessageType
from ..models.report import ReportTemplate, UserReport, ScheduleType, ReportFrequency
from ..models.user import User
from .report_state import ReportsState
from .schedule import (
    REPORT_TIMEZONE,
    SCHEDULE_FIELDS,
    calculate_next_run,
    parse_schedule_time,
    to_storage,
    utc_now,
)

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MAX_MONTH_DAY = 28

REPORT_NOT_FOUND = "Report not found or access denied"

UPDATABLE_FIELDS = frozenset({
    "title",
    "prompt",
    "schedule_type",
    "schedule_frequency",
    "schedule_time",
    "schedule_day",
    "report_template_id",
    "visualization_mode",
    "is_active",
})

NON_NULLABLE_FIELDS = UPDATABLE_FIELDS - {"schedule_day", "report_template_id"}


def normalize_report_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Coerce enum fields and trim text; raise ValidationError on bad values."""
    normalized = dict(fields)

    for field in NON_NULLABLE_FIELDS:
        if field in normalized and normalized[field] is None:
            raise ValidationError(field, f"{field} cannot be empty")

    if normalized.get("schedule_type") is not None:
        try:
            normalized["schedule_type"] = ScheduleType(normalized["schedule_type"])
        except ValueError:
            raise ValidationError("schedule_type", f"Unknown schedule type: {normalized['schedule_type']}")

    if normalized.get("schedule_frequency") is not None:
        try:
            normalized["schedule_frequency"] = ReportFrequency(normalized["schedule_frequency"])
        except ValueError:
            raise ValidationError("schedule_frequency", f"Unknown frequency: {normalized['schedule_frequency']}")

    if isinstance(normalized.get("schedule_day"), str):
        normalized["schedule_day"] = normalized["schedule_day"].strip().lower() or None

    return normalized


def validate_report_fields(fields: Dict[str, Any]) -> None:
    """Check a complete set of report fields before anything is written."""
    if not (fields.get("title") or "").strip():
        raise ValidationError("title", "Title is required")
    if not (fields.get("prompt") or "").strip():
        raise ValidationError("prompt", "Prompt is required")

    if fields.get("schedule_type") != ScheduleType.SCHEDULED:
        return

    try:
        parse_schedule_time(fields.get("schedule_time"))
    except ValueError as e:
        raise ValidationError("schedule_time", str(e))

    frequency = fields.get("schedule_frequency")
    day = fields.get("schedule_day")
    if frequency == ReportFrequency.WEEKLY:
        if not day:
            raise ValidationError("schedule_day", "Please select a start day for weekly reports")
        if day not in WEEKDAYS:
            raise ValidationError("schedule_day", f"Unknown weekday: {day}")
    elif frequency == ReportFrequency.MONTHLY:
        if not day:
            raise ValidationError("schedule_day", "Please select a start day for monthly reports")
        if not day.isdigit() or not 1 <= int(day) <= MAX_MONTH_DAY:
            raise ValidationError("schedule_day", f"Day of month must be between 1 and {MAX_MONTH_DAY}")


class ReportStore:
    """CRUD over a user's report configurations and report messages.

    Every query is scoped by the owning user's id. Mutations re-read the full
    list afterwards instead of patching local state.
    """

    def __init__(self, db: Session, state: ReportsState, user: User, timezone: str = REPORT_TIMEZONE):
        self.db = db
        self.state = state
        self.user = user
        self.user_id = user.id
        self.timezone = timezone

    def _reports(self):
        return self.db.query(UserReport).filter(UserReport.user_id == self.user_id)

    def _next_run_for(self, report: UserReport, now: Optional[datetime] = None) -> Optional[datetime]:
        if report.schedule_type != ScheduleType.SCHEDULED:
            return None
        next_run = calculate_next_run(
            report.schedule_frequency,
            report.schedule_time,
            now=now,
            timezone=self.timezone
        )
        return to_storage(next_run)

    def _fail(self, operation: str, error: Exception) -> None:
        self.db.rollback()
        logger.error(f"Failed to {operation} for user {self.user_id}: {error}", exc_info=True)
        self.state.set_error(f"Failed to {operation}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_reports(self) -> List[UserReport]:
        """Load the user's reports (with templates), newest first."""
        self.state.is_loading = True
        try:
            reports = self._reports().order_by(UserReport.created_at.desc()).all()
            self.state.reports = reports
            return reports
        except SQLAlchemyError as e:
            self._fail("load reports", e)
            return self.state.reports
        finally:
            self.state.is_loading = False

    def get_report(self, report_id: str) -> Optional[UserReport]:
        return self._reports().filter(UserReport.id == report_id).first()

    def list_templates(self) -> List[ReportTemplate]:
        try:
            templates = (
                self.db.query(ReportTemplate)
                .filter(ReportTemplate.is_active == True)  # noqa: E712
                .order_by(ReportTemplate.name)
                .all()
            )
            self.state.templates = templates
            return templates
        except SQLAlchemyError as e:
            self._fail("load report templates", e)
            return self.state.templates

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Optional[UserReport]:
        """Insert a new report. Returns None if the write fails."""
        fields = {
            "schedule_type": ScheduleType.SCHEDULED,
            "schedule_frequency": ReportFrequency.DAILY,
            "schedule_time": "07:00",
            "is_active": True,
        }
        fields.update({k: v for k, v in data.items() if k in UPDATABLE_FIELDS and v is not None})
        fields = normalize_report_fields(fields)
        validate_report_fields(fields)

        report = UserReport(user_id=self.user_id, **fields)
        report.next_run_at = self._next_run_for(report)

        try:
            self.db.add(report)
            self.db.commit()
            self.db.refresh(report)
        except SQLAlchemyError as e:
            self._fail("create report", e)
            return None

        logger.info(f"Created report {report.id} for user {self.user_id} (next_run_at={report.next_run_at})")
        self.list_reports()
        return report

    def update(self, report_id: str, fields: Dict[str, Any]) -> Optional[UserReport]:
        """Apply a partial update. Returns None if the report is missing or the write fails."""
        report = self.get_report(report_id)
        if report is None:
            logger.warning(f"Update rejected: report {report_id} not found for user {self.user_id}")
            self.state.set_error(REPORT_NOT_FOUND)
            return None

        changes = normalize_report_fields({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
        merged = {field: getattr(report, field) for field in UPDATABLE_FIELDS}
        merged.update(changes)
        validate_report_fields(merged)

        try:
            for field, value in changes.items():
                setattr(report, field, value)
            if SCHEDULE_FIELDS & changes.keys():
                report.next_run_at = self._next_run_for(report)
            report.updated_at = utc_now()
            self.db.commit()
            self.db.refresh(report)
        except SQLAlchemyError as e:
            self._fail("update report", e)
            return None

        logger.info(f"Updated report {report_id} fields={sorted(changes)}")
        self.list_reports()
        return report

    def toggle_active(self, report_id: str, is_active: bool) -> Optional[UserReport]:
        return self.update(report_id, {"is_active": is_active})

    def delete(self, report_id: str) -> bool:
        """Delete a report. Its past report messages are kept."""
        try:
            deleted = self._reports().filter(UserReport.id == report_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self._fail("delete report", e)
            return False

        if not deleted:
            self.state.set_error(REPORT_NOT_FOUND)
            return False

        logger.info(f"Deleted report {report_id} for user {self.user_id}")
        self.list_reports()
        return True

    def mark_executed(self, report: UserReport, executed_at: Optional[datetime] = None) -> UserReport:
        """Stamp last_run_at and move next_run_at forward from the execution time."""
        executed_at = executed_at or utc_now()
        try:
            report.last_run_at = executed_at
            if report.schedule_type == ScheduleType.SCHEDULED:
                report.next_run_at = self._next_run_for(report, now=executed_at)
            self.db.commit()
            self.db.refresh(report)
            return report
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("update report run times", str(e), user_id=self.user_id)

    # ------------------------------------------------------------------
    # Report messages
    # ------------------------------------------------------------------

    def load_report_messages(self) -> List[AstraChat]:
        """Load the user's report messages, newest first."""
        self.state.is_loading = True
        try:
            messages = (
                self.db.query(AstraChat)
                .filter(AstraChat.user_id == self.user_id, AstraChat.mode == ChatMode.REPORTS.value)
                .order_by(AstraChat.created_at.desc())
                .all()
            )
            self.state.messages = messages
            return messages
        except SQLAlchemyError as e:
            self._fail("load reports", e)
            return self.state.messages
        finally:
            self.state.is_loading = False

    def add_report_message(
        self,
        text: str,
        metadata: Dict[str, Any],
        prompt: Optional[str] = None,
        model_used: Optional[str] = None,
        response_time_ms: int = 0,
        visualization_data: Optional[str] = None
    ) -> AstraChat:
        """Append one report execution row to the chat log."""
        message = AstraChat(
            user_id=self.user_id,
            user_email=self.user.email or "",
            user_name=self.user.display_name,
            message=text,
            conversation_id=None,
            response_time_ms=response_time_ms,
            tokens_used={},
            model_used=model_used,
            message_metadata=metadata,
            visualization=False,
            visualization_data=visualization_data,
            mode=ChatMode.REPORTS.value,
            message_type=MessageType.ASTRA.value,
            astra_prompt=prompt,
        )
        try:
            self.db.add(message)
            self.db.commit()
            self.db.refresh(message)
            return message
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("save report", str(e), user_id=self.user_id)

    def delete_report_message(self, message_id: str) -> None:
        """Delete one report message owned by the user."""
        try:
            deleted = (
                self.db.query(AstraChat)
                .filter(
                    AstraChat.id == message_id,
                    AstraChat.user_id == self.user_id,
                    AstraChat.mode == ChatMode.REPORTS.value,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting report message {message_id}: {e}", exc_info=True)
            raise PersistenceError("delete report message", str(e), user_id=self.user_id)

        if not deleted:
            raise NotFoundError("Report message", message_id)

        self.state.messages = [m for m in self.state.messages if m.id != message_id]
        logger.info(f"Deleted report message {message_id}")
