"""
Assessment Attempt Engine - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps domain errors to JSON error responses
5. Registers all API route handlers and the health check

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (readiness, scoring, coding, finalization)
- judge/: Code execution harness and executors
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from attempt_engine.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from attempt_engine.errors import AttemptEngineError
from attempt_engine.routes import sessions, runtime
from attempt_engine.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
import attempt_engine.models  # noqa: F401

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
    title="Assessment Attempt Engine",
    description=(
        "Runs a student's timed, optionally proctored attempt at an assessment: "
        "readiness checks, question delivery, MCQ scoring with negative marking, "
        "judged coding questions and idempotent finalization."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# The student client runs on a different origin than the API.
# In production, restrict origins to the actual frontend domain.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
#
# Generates a unique UUID per incoming request, stores it in a
# context variable for every log entry and returns it in the
# X-Request-ID response header.
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Tag every request with an id and log its start and latency."""
    req_id = generate_request_id()
    request_id_var.set(req_id)

    start_time = time.time()

    log_with_context(logger, "INFO",
        f"Request started: {request.method} {request.url.path}",
        context={"request_id": req_id},
        extra_data={
            "ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent", ""),
            "query_params": dict(request.query_params)
        })

    response = await call_next(request)

    duration_ms = (time.time() - start_time) * 1000
    response.headers["X-Request-ID"] = req_id

    log_with_context(logger, "INFO",
        f"Request completed: {request.method} {request.url.path} -> {response.status_code}",
        context={"request_id": req_id},
        extra_data={
            "duration_ms": round(duration_ms, 2),
            "status_code": response.status_code
        })

    return response


# ──────────────────────────────────────────────────────────────
# Domain error handler
# ──────────────────────────────────────────────────────────────
@app.exception_handler(AttemptEngineError)
async def attempt_engine_error_handler(request: Request, exc: AttemptEngineError):
    log_with_context(logger, "WARNING",
        "{} {} rejected: {} ({})".format(request.method, request.url.path, exc.code, exc.message),
        extra_data={"status_code": exc.status_code, "details": exc.details})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code, "details": exc.details},
    )


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(sessions.router, tags=["Sessions"])
app.include_router(runtime.router, tags=["Runtime"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for container health checks and monitoring."""
    return {"status": "healthy", "service": "attempt-engine", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "Assessment Attempt Engine",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "begin": "POST /api/assessments/{id}/begin",
            "device_checks": "GET|POST /api/sessions/{token}/device-checks",
            "start": "POST /api/sessions/{token}/start",
            "runtime": "GET /api/assessments/{id}/runtime",
            "question": "GET /api/assessments/{id}/questions/{index}",
            "answer": "PUT /api/assessments/{id}/answers/{assessment_question_id}",
            "run_code": "POST /api/assessments/{id}/questions/{assessment_question_id}/run",
            "submit_code": "POST /api/assessments/{id}/questions/{assessment_question_id}/submit",
            "flag": "PUT /api/assessments/{id}/flags/{assessment_question_id}",
            "submit_preview": "GET /api/assessments/{id}/submit-preview",
            "submit": "POST /api/assessments/{id}/submit",
            "proctoring_event": "POST /api/assessments/{id}/proctoring-events"
        }
    }
