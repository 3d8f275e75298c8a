"""Report execution trigger: manual runs and the periodic due-report check."""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import AstraException, NotFoundError, PersistenceError, WebhookError
from ..core.metrics import (
    track_persistence_failure,
    track_report_execution,
    track_report_execution_time,
    track_webhook_failure,
)
from ..models.report import UserReport, ScheduleType
from ..models.user import User
from .report_state import ReportsState
from .report_store import ReportStore, REPORT_NOT_FOUND
from .schedule import is_due, utc_now
from .webhook_service import WebhookClient, build_webhook_payload

logger = logging.getLogger(__name__)

WEBHOOK_MODEL_NAME = "n8n-workflow"

RefreshScheduler = Callable[[float, Callable[[], None]], None]


def start_refresh_timer(delay: float, callback: Callable[[], None]) -> None:
    """Run callback once after delay seconds on a daemon thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()


def select_due_reports(reports: Iterable[UserReport], now: datetime) -> List[UserReport]:
    """Active scheduled reports whose next_run_at has been reached."""
    return [
        report for report in reports
        if report.schedule_type == ScheduleType.SCHEDULED
        and report.is_active
        and is_due(report.next_run_at, now)
    ]


def build_report_metadata(report: UserReport, is_manual_run: bool, executed_at: datetime) -> dict:
    """Snapshot of the report at execution time, stored with the message."""
    return {
        "report_title": report.title,
        "report_frequency": getattr(report.schedule_frequency, "value", report.schedule_frequency),
        "report_schedule": report.schedule_time,
        "executed_at": executed_at.isoformat() + "Z",
        "is_manual_run": is_manual_run,
    }


class ReportExecutor:
    """Runs reports through the workflow webhook and records the result.

    At most one execution per report id is in flight per ReportsState. A second
    call for the same id while the first is running returns None and does nothing.
    """

    def __init__(
        self,
        store: ReportStore,
        webhook: WebhookClient,
        state: ReportsState,
        refresh_delay: float = 2.0,
        schedule_refresh: Optional[RefreshScheduler] = None,
        session_factory: Optional[Callable[[], Session]] = None
    ):
        self.store = store
        self.webhook = webhook
        self.state = state
        self.refresh_delay = refresh_delay
        self.schedule_refresh = schedule_refresh or start_refresh_timer
        self.session_factory = session_factory

    @property
    def user(self):
        return self.store.user

    def execute_report(self, report: UserReport, is_manual_run: bool = False) -> Optional[str]:
        """Run one report and persist its output.

        Returns:
            The report text, or None if the report was already running

        Raises:
            AstraException: Configuration, webhook or persistence failure. The
                error string is also left on the state.
        """
        if not self.state.try_start(report.id):
            logger.info(f"Report already running: {report.title} ({report.id})")
            return None

        try:
            with track_report_execution_time(is_manual_run):
                text = self._run(report, is_manual_run)
            track_report_execution(is_manual_run, succeeded=True)
            return text
        except AstraException as e:
            track_report_execution(is_manual_run, succeeded=False)
            self.state.set_error(f"Failed to execute report: {e.user_message}")
            raise
        except Exception as e:
            track_report_execution(is_manual_run, succeeded=False)
            logger.error(f"Unexpected error executing report {report.id}: {e}", exc_info=True)
            self.state.set_error(f"Failed to execute report: {e}")
            raise
        finally:
            self.state.finish(report.id)

    def _run(self, report: UserReport, is_manual_run: bool) -> str:
        executed_at = utc_now()
        metadata = build_report_metadata(report, is_manual_run, executed_at)
        payload = build_webhook_payload(
            prompt=report.prompt,
            user_id=self.store.user_id,
            user_email=self.user.email or "",
            user_name=self.user.display_name,
            metadata=metadata,
        )

        logger.info(f"Executing report {report.id} ({report.title}) manual={is_manual_run}")
        started = time.time()
        try:
            text = self.webhook.send(payload)
        except WebhookError as e:
            track_webhook_failure(e.http_status)
            raise
        response_time_ms = int((time.time() - started) * 1000)

        try:
            self.store.add_report_message(
                text,
                metadata,
                prompt=report.prompt,
                model_used=WEBHOOK_MODEL_NAME,
                response_time_ms=response_time_ms,
            )
            self.store.mark_executed(report, executed_at=executed_at)
        except PersistenceError as e:
            # The webhook already ran; nothing undoes it
            track_persistence_failure("webhook")
            logger.error(
                f"Report {report.id} generated but not fully persisted: {e.message}",
                extra={"report_id": report.id, "user_id": self.store.user_id, "inconsistency": True},
            )
            raise

        user_id = self.store.user_id
        self.schedule_refresh(self.refresh_delay, lambda: self._refresh_messages(user_id))
        logger.info(f"Report execution completed: {report.title} ({report.id})")
        return text

    def _refresh_messages(self, user_id: str) -> None:
        if self.session_factory is None:
            self.store.load_report_messages()
            return

        # The caller's session is closed by now; read through a fresh one
        db = self.session_factory()
        try:
            user = db.get(User, user_id)
            if user is not None:
                ReportStore(db, self.state, user, timezone=self.store.timezone).load_report_messages()
        finally:
            db.close()

    def run_report_now(self, report_id: str) -> Optional[str]:
        """Manually run one of the user's reports."""
        report = self.store.get_report(report_id)
        if report is None:
            self.state.set_error(REPORT_NOT_FOUND)
            raise NotFoundError("Report", report_id)
        return self.execute_report(report, is_manual_run=True)

    def check_scheduled_reports(self, now: Optional[datetime] = None) -> List[str]:
        """Run every due report once. A failing report does not stop the others.

        Returns:
            Ids of reports that completed
        """
        now = now or utc_now()
        due = select_due_reports(self.store.list_reports(), now)
        if due:
            logger.info(f"Found {len(due)} due reports for user {self.store.user_id}")

        completed = []
        for report in due:
            try:
                if self.execute_report(report, is_manual_run=False) is not None:
                    completed.append(report.id)
            except AstraException as e:
                logger.error(f"Scheduled report {report.id} failed: {e.message}")
            except Exception as e:
                logger.error(f"Scheduled report {report.id} failed: {e}", exc_info=True)
        return completed
