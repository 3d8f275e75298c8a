"""Pytest configuration and fixtures."""

import os
import pytest
import requests
from datetime import timedelta
from unittest.mock import Mock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi import Depends
from fastapi.testclient import TestClient

# Set test environment variables BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_jwt_signing")
os.environ.setdefault("REPORT_WEBHOOK_URL", "https://workflows.example.com/webhook/astra")
os.environ.setdefault("GEMINI_API_KEY", "test_gemini_api_key")
os.environ.setdefault("CELERY_BROKER_URL", "redis://localhost:6379/1")
os.environ.setdefault("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

from astra.models import Base, User
from astra.core.database import get_db
from astra.core.security import create_access_token
from astra.config import settings
from astra.services.report_state import state_registry


# Test database URL
TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def make_webhook_response(text="Report body", status_code=200, reason="OK"):
    """Build a requests.Response as the webhook session would return it."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    response.encoding = "utf-8"
    response._content = text.encode("utf-8")
    return response


@pytest.fixture(autouse=True)
def reset_report_state():
    """Running-sets and error banners must not leak between tests."""
    state_registry.reset()
    yield
    state_registry.reset()


@pytest.fixture(scope="function")
def db():
    """Create test database session."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def user(db):
    """Create a report owner."""
    user = User(email="dana@example.com", name="Dana")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_user(db):
    """A second user whose reports must stay invisible."""
    user = User(email="eli@example.com")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_headers(user):
    """Bearer token header for the default user."""
    token = create_access_token(
        {"sub": user.id},
        settings.secret_key,
        settings.algorithm,
        expires_delta=timedelta(minutes=settings.access_token_expire_minutes)
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def webhook_response():
    """Factory for fake webhook responses."""
    return make_webhook_response


@pytest.fixture
def webhook_session():
    """requests.Session stand-in used by the webhook client."""
    session = Mock()
    session.post.return_value = make_webhook_response()
    return session


@pytest.fixture
def refresh_calls():
    """Captures message refreshes scheduled after report runs."""
    return []


@pytest.fixture(scope="function")
def client(db, webhook_session, refresh_calls):
    """Create test client with mocked middleware."""
    # Import app after setting up environment
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware
    from astra.core.middleware import UserContextMiddleware, RequestLoggingMiddleware
    from astra.core.exceptions import register_exception_handlers
    from astra.api.deps import get_report_store, get_report_state, get_report_executor
    from astra.services.report_executor import ReportExecutor
    from astra.services.webhook_service import WebhookClient

    # Create a clean test app without RateLimitMiddleware
    test_app = FastAPI(
        title="Astra Reports API",
        description="Scheduled and on-demand AI reports for Astra",
        version="1.0.0",
        debug=True
    )

    # Register exception handlers
    register_exception_handlers(test_app)

    # Add middleware (without RateLimitMiddleware)
    test_app.add_middleware(RequestLoggingMiddleware)
    test_app.add_middleware(UserContextMiddleware)
    test_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register API routers
    from astra.api.endpoints.health import router as health_router
    from astra.api.endpoints.reports import router as reports_router
    from astra.api.endpoints.generate_report import router as generate_report_router
    from astra.core.metrics import metrics_router

    # Add root endpoint
    @test_app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": "Astra Reports API",
            "version": "1.0.0",
            "docs": "/docs"
        }

    test_app.include_router(health_router, tags=["health"])
    test_app.include_router(reports_router)
    test_app.include_router(generate_report_router)
    test_app.include_router(metrics_router, tags=["monitoring"])

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def override_get_report_executor(
        store=Depends(get_report_store),
        state=Depends(get_report_state)
    ):
        return ReportExecutor(
            store=store,
            webhook=WebhookClient(settings.report_webhook_url, session=webhook_session),
            state=state,
            schedule_refresh=lambda delay, callback: refresh_calls.append((delay, callback)),
        )

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_report_executor] = override_get_report_executor
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()
