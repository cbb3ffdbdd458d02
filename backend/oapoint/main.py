"""
OA Point API entry point.

Wires the pieces together at import time: JSON logging, table creation for
SQLite, the rate-limit, CORS and request-tracing middleware, the domain
error handlers, and the student, admin and compiler routers.

Run with: uvicorn oapoint.main:app (from the backend/ directory)
"""

import re
import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oapoint import config
from oapoint.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from oapoint.errors import OAPointError
from oapoint.ratelimit import RateLimitMiddleware, RequestPacer, TTLStore
from oapoint.routes import admin, compiler, student
from oapoint.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
from oapoint.models import User, Test, Section, Question, Attempt, SectionAttempt, Answer, Violation  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="OA Point",
    description=(
        "Online assessment backend: administrators author timed, sectioned tests "
        "with MCQ and coding questions; invited students take them under "
        "proctoring and get scored on submission."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# Rate limiting
#
# Requests from one IP closer than RATE_LIMIT_MIN_DELAY_MS apart are held
# back; more than RATE_LIMIT_MAX_REQUESTS per window get a 429.
# ──────────────────────────────────────────────────────────────
request_pacer = RequestPacer(
    TTLStore(default_ttl=config.RATE_LIMIT_ENTRY_TTL_SECONDS,
             max_entries=config.RATE_LIMIT_MAX_ENTRIES),
    min_delay_ms=config.RATE_LIMIT_MIN_DELAY_MS,
    max_requests=config.RATE_LIMIT_MAX_REQUESTS,
    window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    entry_ttl=config.RATE_LIMIT_ENTRY_TTL_SECONDS,
)
app.add_middleware(RateLimitMiddleware, pacer=request_pacer, skip_paths=["/health", "/"])

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# Allows the React frontend to call the backend. Restrict CORS_ORIGINS to
# the real frontend domain in production.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request tracing
#
# A well-formed X-Request-ID from the proxy or the React client is reused,
# otherwise a fresh UUID is issued. The id lands in every log entry of the
# request and is echoed back in the response header.
# ──────────────────────────────────────────────────────────────
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def incoming_request_id(request: Request) -> str:
    candidate = request.headers.get("x-request-id", "")
    if REQUEST_ID_PATTERN.match(candidate):
        return candidate
    return generate_request_id()


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Bind the request id and log start and completion with latency."""
    req_id = incoming_request_id(request)
    request_id_var.set(req_id)
    start_time = time.perf_counter()

    log_with_context(logger, "DEBUG" if request.url.path == "/health" else "INFO",
        f"{request.method} {request.url.path} started",
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
        })

    response = await call_next(request)
    response.headers["X-Request-ID"] = req_id

    status = response.status_code
    log_with_context(logger, "ERROR" if status >= 500 else "WARNING" if status >= 400 else "INFO",
        f"{request.method} {request.url.path} finished with {status}",
        extra_data={
            "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
            "status_code": status,
        })
    return response


# ──────────────────────────────────────────────────────────────
# Error handlers
#
# Domain errors carry their own status and code. Anything else is logged
# with its traceback and returned as a generic 500.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(OAPointError)
async def domain_error_handler(request: Request, exc: OAPointError):
    level = "WARNING" if exc.status_code < 500 else "ERROR"
    log_with_context(logger, level,
        f"{exc.code}: {exc.message}",
        extra_data={"path": request.url.path, "status_code": exc.status_code})
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log_with_context(logger, "ERROR",
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        extra_data={"path": request.url.path},
        exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error.", "error": "InternalError"},
        headers={"X-Request-ID": request_id_var.get("")},
    )


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(student.router, tags=["Student"])
app.include_router(admin.router, tags=["Admin"])
app.include_router(compiler.router, tags=["Compiler"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "oa-point-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "OA Point",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "student_tests": "GET /api/student/tests",
            "start": "POST /api/student/tests/{id}/start",
            "submit_answer": "POST /api/student/tests/{id}/submit-answer",
            "complete_section": "POST /api/student/tests/{id}/complete-section",
            "submit": "POST /api/student/tests/{id}/submit",
            "report_violation": "POST /api/student/tests/{id}/report-violation",
            "results": "GET /api/student/tests/{id}/results",
            "admin_tests": "GET|POST /api/admin/tests",
            "compiler_run": "POST /api/compiler/run",
            "compiler_submit": "POST /api/compiler/submit"
        }
    }
