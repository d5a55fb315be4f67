"""
Security Administration API

Main FastAPI application with security hardening.
"""

import logging
import os
import secrets
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1.api import api_router
from app.auth.dependencies import audit_recorder
from app.core.config import (
    get_cors_allow_origins,
    ADMIN_ROLE_NAME,
    DEFAULT_ROLE_NAME,
    ENABLE_DOCS,
    ENABLE_HSTS,
    TRUSTED_HOSTS,
)
from app.core.database import init_db, close_db, async_session_maker, engine
from app.core.errors import AppError
from app.models.role import Operation, Permission, Role

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0.0"

# =============================================================================
# Application Lifespan (startup/shutdown)
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    logger.info("Starting Security Administration API...")

    await init_db()
    logger.info("Database initialized")

    await seed_reference_data()

    yield

    logger.info("Shutting down Security Administration API...")
    if audit_recorder.pending:
        logger.info("Waiting for %d audit entries", audit_recorder.pending)
    await audit_recorder.drain()
    await close_db()

async def seed_reference_data():
    """Create the default and administrator roles and the CRUD permissions if missing."""
    async with async_session_maker() as session:
        existing_roles = {
            name.lower() for name in (await session.execute(select(Role.name))).scalars().all()
        }
        for name, description in (
            (DEFAULT_ROLE_NAME, "Default role assigned on registration"),
            (ADMIN_ROLE_NAME, "Administrators"),
        ):
            if name.lower() not in existing_roles:
                session.add(Role(name=name, description=description, is_active=True))
                logger.info("Created role '%s'", name)

        existing_permissions = set((await session.execute(select(Permission.name))).scalars().all())
        for op in Operation:
            name = op.value.capitalize()
            if name not in existing_permissions:
                session.add(Permission(name=name, description=f"{name} records"))

        await session.commit()

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Security Administration API",
    version=APP_VERSION,
    description="Authentication, token rotation and role-based access control",
    lifespan=lifespan,
    docs_url="/docs" if ENABLE_DOCS else None,
    redoc_url="/redoc" if ENABLE_DOCS else None,
)

# =============================================================================
# Security Middleware
# =============================================================================

BASE_SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
API_CSP = "default-src 'none'; frame-ancestors 'none'"
DOCS_CSP = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
    "img-src 'self' data: https://fastapi.tiangolo.com"
)

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers; auth responses are additionally marked uncacheable."""

    async def dispatch(self, request: Request, call_next: Callable):
        response = await call_next(request)
        path = request.url.path

        response.headers.update(BASE_SECURITY_HEADERS)
        response.headers["Content-Security-Policy"] = (
            DOCS_CSP if path.startswith(("/docs", "/redoc")) else API_CSP
        )
        # Tokens must never be cached by intermediaries
        if path.startswith("/api/auth"):
            response.headers["Cache-Control"] = "no-store"
        if ENABLE_HSTS:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag every request and response with an X-Request-ID for log correlation."""

    async def dispatch(self, request: Request, call_next: Callable):
        request.state.request_id = request.headers.get("X-Request-ID") or secrets.token_urlsafe(8)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

# =============================================================================
# Add Middleware (order matters - first added = last executed)
# =============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

# Trusted hosts (prevent host header attacks)
if "*" not in TRUSTED_HOSTS:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=TRUSTED_HOSTS)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)

# =============================================================================
# Routes
# =============================================================================

@app.get("/", tags=["root"])
def home():
    """Root endpoint."""
    return {
        "name": "Security Administration API",
        "version": APP_VERSION,
        "docs": "/docs" if ENABLE_DOCS else None,
    }

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    db_status = "healthy"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Health check database probe failed: %s", e)
        db_status = "unhealthy"

    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": APP_VERSION,
        "database": db_status,
    }

app.include_router(api_router, prefix="/api")

# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render service errors with their own status code."""
    request_id = getattr(request.state, "request_id", "unknown")
    if exc.status_code >= 500:
        logger.error("[%s] %s: %s", request_id, exc.error_code, exc.message, exc_info=exc.original_error)
        detail = "An internal error occurred"
    else:
        detail = exc.message

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": detail,
            "errorCode": exc.error_code,
            "requestId": request_id,
        },
        headers=headers,
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to prevent information leakage."""
    request_id = getattr(request.state, "request_id", "unknown")
    logger.exception("[%s] Unhandled exception: %s", request_id, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred",
            "requestId": request_id,
        },
    )

# =============================================================================
# Development Server
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
