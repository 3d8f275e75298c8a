"""Report management endpoints."""

from fastapi import APIRouter, Depends, Response, status
from typing import List

from ...core.exceptions import NotFoundError, PersistenceError
from ...models.chat import AstraChat
from ...models.report import UserReport, ReportTemplate
from ...schemas.report import (
    ReportCreate,
    ReportUpdate,
    ReportToggle,
    ReportResponse,
    ReportTemplateResponse,
    ReportMessageResponse,
    ReportRunResponse,
    ReportCheckResponse,
    ReportStateResponse,
)
from ...services.report_executor import ReportExecutor
from ...services.report_state import ReportsState
from ...services.report_store import ReportStore, REPORT_NOT_FOUND
from ..deps import get_report_store, get_report_executor, get_report_state

router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


def _enum_value(value):
    return getattr(value, "value", value)


def _template_response(template: ReportTemplate) -> ReportTemplateResponse:
    return ReportTemplateResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        prompt_template=template.prompt_template,
        default_schedule=_enum_value(template.default_schedule),
        default_time=template.default_time,
        default_day=template.default_day,
        category=template.category,
    )


def _report_response(report: UserReport, state: ReportsState) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        title=report.title,
        prompt=report.prompt,
        schedule_type=_enum_value(report.schedule_type),
        schedule_frequency=_enum_value(report.schedule_frequency),
        schedule_time=report.schedule_time,
        schedule_day=report.schedule_day,
        report_template_id=report.report_template_id,
        visualization_mode=report.visualization_mode,
        is_active=report.is_active,
        is_running=state.is_running(report.id),
        last_run_at=report.last_run_at,
        next_run_at=report.next_run_at,
        created_at=report.created_at,
        updated_at=report.updated_at,
        template=_template_response(report.template) if report.template else None,
    )


def _message_response(message: AstraChat) -> ReportMessageResponse:
    return ReportMessageResponse(
        id=message.id,
        text=message.message,
        message_type=message.message_type,
        metadata=message.message_metadata or {},
        visualization=message.visualization,
        visualization_data=message.visualization_data,
        has_stored_visualization=bool(message.visualization_data),
        created_at=message.created_at,
    )


def _raise_store_failure(state: ReportsState, operation: str, report_id: str = None):
    """Turn a store's None/False result into an HTTP error."""
    if state.error == REPORT_NOT_FOUND:
        raise NotFoundError("Report", report_id or "")
    raise PersistenceError(operation, state.error or "storage error")


@router.get("/templates", response_model=List[ReportTemplateResponse])
def list_templates(store: ReportStore = Depends(get_report_store)):
    """List the active report templates."""
    return [_template_response(t) for t in store.list_templates()]


@router.get("", response_model=List[ReportResponse])
def list_reports(
    store: ReportStore = Depends(get_report_store),
    state: ReportsState = Depends(get_report_state)
):
    """List the current user's reports, newest first."""
    return [_report_response(r, state) for r in store.list_reports()]


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_report(
    request: ReportCreate,
    store: ReportStore = Depends(get_report_store),
    state: ReportsState = Depends(get_report_state)
):
    """
    Create a report.

    Raises:
        ValidationError: Missing title/prompt or start day
        PersistenceError: Insert failed
    """
    report = store.create(request.model_dump(exclude_none=True))
    if report is None:
        _raise_store_failure(state, "create report")
    return _report_response(report, state)


@router.patch("/{report_id}", response_model=ReportResponse)
def update_report(
    report_id: str,
    request: ReportUpdate,
    store: ReportStore = Depends(get_report_store),
    state: ReportsState = Depends(get_report_state)
):
    """Apply a partial update to one of the user's reports."""
    report = store.update(report_id, request.model_dump(exclude_unset=True))
    if report is None:
        _raise_store_failure(state, "update report", report_id)
    return _report_response(report, state)


@router.post("/{report_id}/toggle", response_model=ReportResponse)
def toggle_report(
    report_id: str,
    request: ReportToggle,
    store: ReportStore = Depends(get_report_store),
    state: ReportsState = Depends(get_report_state)
):
    """Pause or resume a report."""
    report = store.toggle_active(report_id, request.is_active)
    if report is None:
        _raise_store_failure(state, "update report", report_id)
    return _report_response(report, state)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report(
    report_id: str,
    store: ReportStore = Depends(get_report_store),
    state: ReportsState = Depends(get_report_state)
):
    """Delete a report. Messages from its past runs are kept."""
    if not store.delete(report_id):
        _raise_store_failure(state, "delete report", report_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{report_id}/run", response_model=ReportRunResponse)
def run_report(
    report_id: str,
    executor: ReportExecutor = Depends(get_report_executor)
):
    """
    Run a report now.

    Returns already_running without side effects if the same report is in flight.
    """
    text = executor.run_report_now(report_id)
    if text is None:
        return ReportRunResponse(report_id=report_id, status="already_running")
    return ReportRunResponse(report_id=report_id, status="completed", message=text)


@router.post("/check", response_model=ReportCheckResponse)
def check_reports(executor: ReportExecutor = Depends(get_report_executor)):
    """Run the user's scheduled reports whose next run time has passed."""
    return ReportCheckResponse(executed=executor.check_scheduled_reports())


@router.get("/messages", response_model=List[ReportMessageResponse])
def list_report_messages(store: ReportStore = Depends(get_report_store)):
    """List messages produced by the user's report runs, newest first."""
    return [_message_response(m) for m in store.load_report_messages()]


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_report_message(
    message_id: str,
    store: ReportStore = Depends(get_report_store)
):
    """Delete one report message."""
    store.delete_report_message(message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/state", response_model=ReportStateResponse)
def get_state(state: ReportsState = Depends(get_report_state)):
    """Running report ids and the current error banner."""
    return ReportStateResponse(
        running=sorted(state.running),
        error=state.error,
        is_loading=state.is_loading,
    )


@router.delete("/state/error", status_code=status.HTTP_204_NO_CONTENT)
def dismiss_error(state: ReportsState = Depends(get_report_state)):
    """Dismiss the error banner."""
    state.clear_error()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
