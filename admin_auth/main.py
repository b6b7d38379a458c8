"""
Main FastAPI application for admin_auth
System administrator authentication and risk-scoring service
"""

import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from admin_auth import metrics
from admin_auth.background.cleanup_worker import CleanupWorker
from admin_auth.core.config import settings
from admin_auth.core.database import SessionLocal, dispose_db, init_db
from admin_auth.core.errors import ErrorCode, SystemAdminError
from admin_auth.core.redis_client import close_redis, get_redis
from admin_auth.middleware import HTTPMetricsMiddleware, RequestIDMiddleware

# Import routers
from admin_auth.api.dependencies import get_container
from admin_auth.api.v1.endpoints import audit, auth, ip_management, monitoring

JSON_LOG_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
    '"module": "%(name)s", "message": "%(message)s"}'
)
TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=JSON_LOG_FORMAT if settings.LOG_FORMAT == "json" else TEXT_LOG_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    metrics.app_info.info({"version": settings.VERSION, "environment": settings.ENVIRONMENT})

    # Initialize database (in production, use migrations instead)
    if settings.ENVIRONMENT == "development":
        init_db()

    cleanup_worker = None
    if settings.CLEANUP_WORKER_ENABLED:
        container = get_container()
        cleanup_worker = CleanupWorker(container.mfa, container.sessions)
        await cleanup_worker.start()
    else:
        logger.info("Cleanup worker disabled")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if cleanup_worker:
        await cleanup_worker.stop()
    close_redis()
    dispose_db()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="System administrator authentication with risk-based MFA step-up",
    lifespan=lifespan
)

# Middleware
app.add_middleware(HTTPMetricsMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOWED_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "X-Admin-Token", "X-Geo-Location", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# Exception handlers
@app.exception_handler(SystemAdminError)
async def system_admin_error_handler(request: Request, exc: SystemAdminError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
        message = f"{location}: {errors[0].get('msg')}" if location else str(errors[0].get("msg"))
    return JSONResponse(
        status_code=400,
        content={"error": message, "code": ErrorCode.VALIDATION_ERROR.value},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": ErrorCode.AUTH_ERROR.value},
    )


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        database_status = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database_status = "unhealthy"

    checks = {"database": database_status}
    if settings.ADMIN_MFA_STORE == "redis":
        try:
            checks["redis"] = "healthy" if get_redis().ping() else "unhealthy"
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            checks["redis"] = "unhealthy"

    healthy = all(status == "healthy" for status in checks.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.VERSION,
        "checks": checks,
    }


# Metrics endpoint (Prometheus)
@app.get("/metrics")
def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Root endpoint
@app.get("/")
def root():
    """Root endpoint"""
    return {
        "service": settings.APP_NAME,
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "docs_url": "/docs",
    }


# Include API routers
SYSTEM_ADMIN_PREFIX = f"{settings.API_V1_PREFIX}/system-admin"

app.include_router(auth.router, prefix=f"{SYSTEM_ADMIN_PREFIX}/auth", tags=["system-admin-auth"])
app.include_router(ip_management.router, prefix=f"{SYSTEM_ADMIN_PREFIX}/ip-management", tags=["ip-management"])
app.include_router(audit.router, prefix=f"{SYSTEM_ADMIN_PREFIX}/audit", tags=["audit"])
app.include_router(monitoring.router, prefix=f"{SYSTEM_ADMIN_PREFIX}/monitoring", tags=["monitoring"])
