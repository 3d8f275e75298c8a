"""Celery tasks for report execution."""

from celery import shared_task
import logging

from ..core.database import SessionLocal
from ..core.metrics import update_active_scheduled_reports_gauge
from ..models.report import UserReport, ScheduleType
from ..models.user import User
from ..services.report_executor import ReportExecutor
from ..services.report_state import state_registry
from ..services.report_store import ReportStore
from ..services.schedule import utc_now
from ..services.webhook_service import WebhookClient
from ..config import settings

logger = logging.getLogger(__name__)


def _skip_refresh(delay, callback):
    # Nothing reads report messages from a worker's state
    pass


@shared_task(name="astra.tasks.report_tasks.check_scheduled_reports")
def check_scheduled_reports():
    """Run every active scheduled report whose next_run_at has passed."""
    db = SessionLocal()
    executed = []
    try:
        now = utc_now()
        logger.info("Checking for scheduled reports...")

        user_ids = [
            row[0] for row in db.query(UserReport.user_id).filter(
                UserReport.schedule_type == ScheduleType.SCHEDULED,
                UserReport.is_active == True,  # noqa: E712
                UserReport.next_run_at <= now
            ).distinct().all()
        ]
        logger.info(f"Found due reports for {len(user_ids)} users")

        webhook = WebhookClient(settings.report_webhook_url, timeout=settings.report_webhook_timeout)

        for user_id in user_ids:
            try:
                user = db.get(User, user_id)
                if not user:
                    logger.error(f"User {user_id} not found for due reports")
                    continue

                state = state_registry.get(user_id)
                executor = ReportExecutor(
                    store=ReportStore(db, state, user, timezone=settings.report_timezone),
                    webhook=webhook,
                    state=state,
                    schedule_refresh=_skip_refresh,
                )
                executed.extend(executor.check_scheduled_reports(now=now))

            except Exception as e:
                logger.error(f"Error processing reports for user {user_id}: {e}", exc_info=True)
                db.rollback()
                # Continue with next user
                continue

        update_active_scheduled_reports_gauge(db)
        logger.info(f"Scheduled report check complete: {len(executed)} executed")
        return {"executed": executed}

    except Exception as e:
        logger.error(f"Error in check_scheduled_reports: {e}", exc_info=True)
        return {"executed": executed, "error": str(e)}
    finally:
        db.close()
