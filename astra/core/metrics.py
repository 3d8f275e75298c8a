"""Prometheus metrics for monitoring report operations."""

from contextlib import contextmanager
from time import time
from typing import Generator

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from ..models.report import UserReport, ScheduleType
from .database import get_db


# =============================================================================
# Counters
# =============================================================================

reports_executed = Counter(
    "astra_reports_executed_total",
    "Total report executions",
    ["trigger", "status"],  # manual/scheduled, success/failed
)

webhook_failures = Counter(
    "astra_webhook_failures_total",
    "Failed report webhook calls",
    ["reason"],  # http status code or "transport"
)

report_persistence_failures = Counter(
    "astra_report_persistence_failures_total",
    "Report runs whose text was generated but could not be saved",
    ["source"],  # webhook, gemini
)


# =============================================================================
# Histograms
# =============================================================================

report_execution_time = Histogram(
    "astra_report_execution_seconds",
    "Report execution duration",
    ["trigger"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

gemini_latency = Histogram(
    "astra_gemini_latency_seconds",
    "Gemini API response time",
    ["model"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# =============================================================================
# Gauges
# =============================================================================

active_scheduled_reports = Gauge(
    "astra_active_scheduled_reports",
    "Number of active scheduled reports",
)


# =============================================================================
# Helper Functions
# =============================================================================

def trigger_label(is_manual_run: bool) -> str:
    return "manual" if is_manual_run else "scheduled"


def track_report_execution(is_manual_run: bool, succeeded: bool) -> None:
    """
    Increment the report executions counter.

    Args:
        is_manual_run: Whether a user started the run
        succeeded: Whether the run completed
    """
    reports_executed.labels(
        trigger=trigger_label(is_manual_run),
        status="success" if succeeded else "failed",
    ).inc()


def track_webhook_failure(http_status=None) -> None:
    webhook_failures.labels(reason=str(http_status) if http_status else "transport").inc()


def track_persistence_failure(source: str) -> None:
    report_persistence_failures.labels(source=source).inc()


@contextmanager
def track_report_execution_time(is_manual_run: bool) -> Generator[None, None, None]:
    """
    Context manager to track report execution duration.

    Example:
        with track_report_execution_time(is_manual_run=True):
            # Run report
            pass
    """
    start_time = time()
    try:
        yield
    finally:
        duration = time() - start_time
        report_execution_time.labels(trigger=trigger_label(is_manual_run)).observe(duration)


@contextmanager
def track_gemini_latency(model: str) -> Generator[None, None, None]:
    """
    Context manager to track Gemini API latency.

    Args:
        model: Gemini model name
    """
    start_time = time()
    try:
        yield
    finally:
        duration = time() - start_time
        gemini_latency.labels(model=model).observe(duration)


def update_active_scheduled_reports_gauge(db: Session) -> None:
    """
    Update the active scheduled reports gauge with current count.

    Args:
        db: Database session
    """
    count = db.query(UserReport).filter(
        UserReport.is_active == True,  # noqa: E712
        UserReport.schedule_type == ScheduleType.SCHEDULED
    ).count()
    active_scheduled_reports.set(count)


# =============================================================================
# FastAPI Endpoint
# =============================================================================

metrics_router = APIRouter()


@metrics_router.get("/metrics")
def get_metrics(db: Session = Depends(get_db)) -> Response:
    """
    FastAPI endpoint to expose Prometheus metrics.

    Returns:
        Response with Prometheus metrics in text format
    """
    update_active_scheduled_reports_gauge(db)
    metrics_data = generate_latest()
    return Response(content=metrics_data, media_type=CONTENT_TYPE_LATEST)
