"""FastAPI application entry point."""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis

from .config import settings
from .models import Base
from .core.database import engine
from .core.middleware import RateLimitMiddleware, UserContextMiddleware, RequestLoggingMiddleware
from .core.exceptions import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Astra Reports API",
    description="Scheduled and on-demand AI reports for Astra",
    version="1.0.0",
    debug=settings.debug
)

# Register exception handlers
register_exception_handlers(app)

# Redis client for rate limiting (connects lazily)
try:
    redis_client = Redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,  # 5 second connection timeout
        socket_timeout=5,  # 5 second operation timeout
        retry_on_timeout=True,
        health_check_interval=30
    )
    logger.info("Redis client created successfully")
except Exception as e:
    logger.error(f"Failed to create Redis client: {e}")
    raise

# Add middleware; the last one added runs first (CORS → user → logging → rate limit)
app.add_middleware(RateLimitMiddleware, redis_client=redis_client)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(UserContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=settings.cors_allow_methods,
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    try:
        logger.info("Starting Astra Reports API...")
        logger.info(f"Environment: {settings.environment}")

        try:
            await redis_client.ping()
            logger.info("Redis connection verified - ready for rate limiting")
        except Exception as e:
            logger.error(f"Redis connection test failed: {e}")
            logger.warning("Continuing without Redis rate limiting")

        if not settings.report_webhook_url:
            logger.warning("REPORT_WEBHOOK_URL is not set; report runs will fail until it is configured")

        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")

        logger.info("Astra Reports API started successfully")
    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down Astra Reports API...")

    if redis_client:
        await redis_client.close()
        logger.info("Redis client closed")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Astra Reports API",
        "version": "1.0.0",
        "docs": "/docs"
    }


# Register API routers
from .api.endpoints.health import router as health_router  # noqa: E402
from .api.endpoints.reports import router as reports_router  # noqa: E402
from .api.endpoints.generate_report import router as generate_report_router  # noqa: E402
from .core.metrics import metrics_router  # noqa: E402

app.include_router(health_router, tags=["health"])
app.include_router(reports_router)
app.include_router(generate_report_router)
app.include_router(metrics_router, tags=["monitoring"])
