from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from knowledge_bot.core.logging import company_id_var, configure_logging, correlation_id_var
from knowledge_bot.core.settings import get_app_settings
from knowledge_bot.db.run_migrations import main as run_alembic
from knowledge_bot.db.seed import seed_all
from knowledge_bot.schemas.common import ErrorInfo, ErrorResponse, MessageResponse
from knowledge_bot.services.base import ServiceError

# Routers
from knowledge_bot.api.routes.auth import router as auth_router
from knowledge_bot.api.routes.companies import router as companies_router
from knowledge_bot.api.routes.bots import router as bots_router
from knowledge_bot.api.routes.bot_management import router as bot_management_router
from knowledge_bot.api.routes.uploads import router as uploads_router
from knowledge_bot.api.routes.notification_preferences import router as notification_preferences_router
from knowledge_bot.api.routes.ingestion import router as ingestion_router
from knowledge_bot.api.routes.subscription import router as subscription_router
from knowledge_bot.api.routes.billing import router as billing_router
from knowledge_bot.api.routes.admin_billing import router as admin_billing_router
from knowledge_bot.api.routes.debug import router as debug_router

# Configure structured logging once at import
configure_logging()
logger = logging.getLogger(__name__)

settings = get_app_settings()

openapi_tags = [
    {"name": "Health", "description": "Liveness check."},
    {"name": "Auth", "description": "Registration, login and admin-panel login."},
    {"name": "Companies", "description": "Company name validation, search and current company."},
    {"name": "Bots", "description": "Tenant-scoped bot CRUD."},
    {"name": "Bot Management", "description": "Bot management for admin-panel users, including upload targets."},
    {"name": "Uploads", "description": "File uploads and file records."},
    {"name": "Notification Preferences", "description": "Per user and bot ingestion notification settings."},
    {"name": "File Ingestion", "description": "Lookups and status reporting for the ingestion pipeline."},
    {"name": "Subscription", "description": "Subscription validation, usage and reports."},
    {"name": "Billing", "description": "Stripe webhook, billing overview and billing notifications."},
    {"name": "Admin Billing", "description": "Manual subscription management for administrators."},
    {"name": "Debug", "description": "Diagnostics, mounted only when enabled."},
]

app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    openapi_tags=openapi_tags,
)

# CORS - avoid wildcard with credentials
cors_allow_credentials = settings.CORS_ALLOW_CREDENTIALS
if settings.CORS_ORIGINS == ["*"] and cors_allow_credentials:
    logger.warning("CORS_ALLOW_CREDENTIALS=True with '*' origins is not permitted; disabling credentials.")
    cors_allow_credentials = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=cors_allow_credentials,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Attach a correlation id to the request context and echo it as 'X-Correlation-ID'.

    The company is bound later, once the acting user is resolved.
    """
    corr = request.headers.get("X-Correlation-ID") or request.headers.get("X-Request-ID") or str(uuid4())
    token_corr = correlation_id_var.set(corr)
    token_company = company_id_var.set(None)
    request.state.correlation_id = corr

    logger.info("Incoming request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
    finally:
        correlation_id_var.reset(token_corr)
        company_id_var.reset(token_company)

    response.headers["X-Correlation-ID"] = corr
    return response


def _build_error_response(
    request: Request,
    status_code: int,
    error_type: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    """Build a standardized ErrorResponse JSONResponse."""
    err = ErrorResponse(
        status=status_code,
        error=ErrorInfo(type=error_type, message=message, details=details),
        correlation_id=getattr(request.state, "correlation_id", None) or correlation_id_var.get(),
        company_id=company_id_var.get(),
        path=request.url.path,
        method=request.method,
        timestamp=datetime.now(tz=timezone.utc),
    )
    return JSONResponse(status_code=status_code, content=err.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Global handler for HTTPException producing the standard error envelope."""
    detail = exc.detail if isinstance(exc.detail, str) else "HTTP Error"
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type="http_error",
        message=str(detail),
        details=None if isinstance(exc.detail, str) else exc.detail,
    )


@app.exception_handler(ServiceError)
async def service_exception_handler(request: Request, exc: ServiceError):
    """Map business rule violations raised by services to their HTTP status."""
    if exc.status_code >= 500:
        logger.error("Service error: %s", exc.message)
    return _build_error_response(
        request=request,
        status_code=exc.status_code,
        error_type=exc.error_type,
        message=exc.message,
        details=exc.details,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Global handler for request validation errors with a standard structure."""
    return _build_error_response(
        request=request,
        status_code=422,
        error_type="validation_error",
        message="Request validation failed",
        details=_jsonable_errors(exc),
    )


def _jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw exception objects pydantic may attach under 'ctx'."""
    errors = []
    for error in exc.errors():
        item = dict(error)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in item["ctx"].items()}
        errors.append(item)
    return errors


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all handler to avoid leaking stack traces and to return a structured error."""
    logger.exception("Unhandled error processing request")
    return _build_error_response(
        request=request,
        status_code=500,
        error_type="internal_error",
        message="An unexpected error occurred",
        details=None,
    )


@app.on_event("startup")
async def on_startup() -> None:
    """
    Run migrations and optional seeding on service startup.

    Alembic drives its own event loop, so it runs in a worker thread.
    """
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            logger.info("Running Alembic migrations: upgrade head")
            await run_in_threadpool(run_alembic, ["upgrade", "head"])
            logger.info("Migrations completed.")
        except Exception as exc:
            logger.exception("Migration step failed: %s", exc)

    if settings.AUTO_SEED:
        try:
            logger.info("Running database seeding...")
            await seed_all()
            logger.info("Seeding completed.")
        except Exception as exc:
            logger.exception("Seeding step failed: %s", exc)


# Build API v1 router and include sub-routers
api_v1 = APIRouter(prefix="/api/v1")


# PUBLIC_INTERFACE
@api_v1.get(
    "/health",
    response_model=MessageResponse,
    summary="Health Check",
    tags=["Health"],
)
def health_check() -> MessageResponse:
    """
    Basic liveness health check endpoint.

    Returns:
        MessageResponse: Simple confirmation that the service is running.
    """
    return MessageResponse(message="Healthy")


api_v1.include_router(auth_router)
api_v1.include_router(companies_router)
api_v1.include_router(bots_router)
api_v1.include_router(bot_management_router)
api_v1.include_router(uploads_router)
api_v1.include_router(notification_preferences_router)
api_v1.include_router(ingestion_router)
api_v1.include_router(subscription_router)
api_v1.include_router(billing_router)
api_v1.include_router(admin_billing_router)
if settings.ENABLE_DEBUG_ROUTES:
    logger.warning("Debug routes are enabled")
    api_v1.include_router(debug_router)

# Attach api_v1 to app
app.include_router(api_v1)
