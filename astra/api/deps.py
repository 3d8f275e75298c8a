"""Dependency injection for FastAPI endpoints."""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from ..config import settings
from ..core.database import SessionLocal, get_db
from ..core.exceptions import InvalidTokenError
from ..core.security import decode_access_token
from ..models.user import User
from ..services.report_executor import ReportExecutor
from ..services.report_state import ReportsState, state_registry
from ..services.report_store import ReportStore
from ..services.webhook_service import WebhookClient

__all__ = [
    "get_db",
    "get_current_user",
    "get_report_state",
    "get_report_store",
    "get_webhook_client",
    "get_report_executor",
]


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the bearer token to a user.

    Args:
        authorization: "Bearer <jwt>" header
        db: Database session

    Returns:
        Authenticated User

    Raises:
        InvalidTokenError: Missing/invalid token or unknown user
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise InvalidTokenError("Missing bearer token")

    user_id = decode_access_token(
        authorization.split(" ", 1)[1].strip(),
        settings.secret_key,
        settings.algorithm
    )
    user = db.get(User, user_id)
    if user is None:
        raise InvalidTokenError("Unknown user")
    return user


def get_report_state(user: User = Depends(get_current_user)) -> ReportsState:
    return state_registry.get(user.id)


def get_report_store(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    state: ReportsState = Depends(get_report_state)
) -> ReportStore:
    return ReportStore(db, state, user, timezone=settings.report_timezone)


def get_webhook_client() -> WebhookClient:
    return WebhookClient(settings.report_webhook_url, timeout=settings.report_webhook_timeout)


def get_report_executor(
    store: ReportStore = Depends(get_report_store),
    webhook: WebhookClient = Depends(get_webhook_client),
    state: ReportsState = Depends(get_report_state)
) -> ReportExecutor:
    return ReportExecutor(
        store=store,
        webhook=webhook,
        state=state,
        refresh_delay=settings.report_refresh_delay_seconds,
        session_factory=SessionLocal,
    )
