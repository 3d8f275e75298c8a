"""Server-side report generation through Gemini."""

from typing import Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
import time

from ..core.exceptions import NotFoundError, PersistenceError
from ..core.metrics import track_persistence_failure
from ..models.chat import AstraChat, ChatMode, MessageType
from ..models.report import UserReport
from ..models.user import User
from .schedule import utc_now

logger = logging.getLogger(__name__)


class ReportService:
    """Generates a report's text directly with Gemini, bypassing the workflow webhook."""

    def __init__(self, db: Session, gemini_service):
        self.db = db
        self.gemini = gemini_service

    def generate_report(
        self,
        user_id: str,
        report_id: str,
        prompt: str,
        visualization_mode: Optional[str] = None
    ) -> Dict:
        """Generate, store and timestamp one manual run of a report.

        Args:
            user_id: Owner of the report
            report_id: Report to run
            prompt: Prompt sent to Gemini
            visualization_mode: Overrides the report's own visualization mode

        Returns:
            {"success": True, "message": ...}

        Raises:
            NotFoundError: Report missing or owned by someone else
            GeminiError: Text generation failed
            PersistenceError: The generated text could not be saved
        """
        logger.info(f"Generating report for user {user_id}, report_id={report_id}")

        report = self.db.query(UserReport).filter(
            UserReport.id == report_id,
            UserReport.user_id == user_id
        ).first()
        if not report:
            raise NotFoundError("Report", report_id)

        started = time.time()
        report_text = self.gemini.generate_report_text(prompt)
        response_time_ms = int((time.time() - started) * 1000)
        logger.info(f"Report {report_id} generated successfully")

        executed_at = utc_now()
        user = self.db.get(User, user_id)
        message = AstraChat(
            user_id=user_id,
            user_email=(user.email if user else None) or "",
            user_name=user.display_name if user else "User",
            message=report_text,
            response_time_ms=response_time_ms,
            model_used=self.gemini.model_name,
            message_metadata={
                "report_title": report.title,
                "report_schedule": report.schedule_time,
                "report_frequency": getattr(report.schedule_frequency, "value", report.schedule_frequency),
                "is_manual_run": True,
                "executed_at": executed_at.isoformat() + "Z",
                "visualization_mode": visualization_mode or report.visualization_mode or "text",
            },
            mode=ChatMode.REPORTS.value,
            message_type=MessageType.ASTRA.value,
            astra_prompt=prompt,
        )

        try:
            self.db.add(message)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            track_persistence_failure("gemini")
            logger.error(
                f"Error inserting report message for report {report_id}: {e}",
                extra={"report_id": report_id, "user_id": user_id, "inconsistency": True},
            )
            raise PersistenceError("save report", str(e), user_id=user_id)

        try:
            report.last_run_at = executed_at
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            track_persistence_failure("gemini")
            logger.error(
                f"Report {report_id} saved but last_run_at not updated: {e}",
                extra={"report_id": report_id, "user_id": user_id, "inconsistency": True},
            )
            raise PersistenceError("update report run times", str(e), user_id=user_id)

        logger.info(f"Report {report_id} saved to database")
        return {"success": True, "message": "Report generated successfully"}
