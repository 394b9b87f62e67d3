"""FastAPI application entry point."""
import traceback
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from memberships.config import settings
from memberships.database import engine
from memberships.exceptions import LedgerError, ValidationError
from memberships.middleware.logging import LoggingMiddleware, get_request_id, setup_logging
from memberships.middleware.metrics import MetricsMiddleware
from memberships.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

setup_logging()
logger = structlog.get_logger(__name__)

# Pydantic v2 error types mapped to API error codes
VALIDATION_CODE_MAPPING = {
    "missing": ErrorCode.MISSING_REQUIRED_FIELD,
    "uuid_parsing": ErrorCode.INVALID_UUID,
    "uuid_type": ErrorCode.INVALID_UUID,
    "enum": ErrorCode.INVALID_ENUM_VALUE,
    "greater_than": ErrorCode.INVALID_AMOUNT,
    "greater_than_equal": ErrorCode.INVALID_AMOUNT,
    "int_parsing": ErrorCode.INVALID_AMOUNT,
    "int_from_float": ErrorCode.INVALID_AMOUNT,
    "string_too_long": ErrorCode.VALUE_TOO_LONG,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    logger.info("application_shutting_down")
    await engine.dispose()


app = FastAPI(
    title="Studio Memberships",
    description="Subscription lifecycle and payment ledger for studio memberships",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
# Added last so it runs first and every other layer logs with the request id
app.add_middleware(LoggingMiddleware)

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: list[ErrorDetail],
    remediation: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        details=details,
        remediation=remediation,
        request_id=get_request_id(request),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json"),
        headers=headers,
    )


@app.exception_handler(LedgerError)
async def ledger_exception_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """
    Handle business-rule rejections and failed atomic operations.

    The status code and error code come from the exception class, so every
    rejection of the same kind looks the same to clients.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "ledger_error",
        path=request.url.path,
        method=request.method,
        error=type(exc).__name__,
        code=exc.code,
        message=exc.message,
    )

    detail = ErrorDetail(
        code=exc.code,
        message=exc.message,
        field=exc.field if isinstance(exc, ValidationError) else None,
    )
    return _error_response(
        request,
        exc.status_code,
        type(exc).__name__,
        exc.message,
        [detail],
        remediation=REMEDIATION_HINTS.get(exc.code),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request body and parameter validation errors.

    Returns 422 with one detail per invalid field.
    """
    details = []
    for error in exc.errors():
        code = VALIDATION_CODE_MAPPING.get(error["type"], ErrorCode.VALIDATION_ERROR)
        details.append(
            ErrorDetail(
                code=code,
                message=error["msg"],
                field=".".join(str(loc) for loc in error["loc"]),
                value=error.get("input") if isinstance(error.get("input"), (str, int, float, bool)) else None,
            )
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(details),
    )

    first_code = details[0].code if details else ErrorCode.VALIDATION_ERROR
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        details,
        remediation=REMEDIATION_HINTS.get(first_code, "Check the API documentation at /docs"),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors outside the transaction gateway.

    Returns 503 Service Unavailable.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return _error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DatabaseError",
        "A database error occurred",
        [ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=error_message)],
        remediation=REMEDIATION_HINTS.get(ErrorCode.DATABASE_ERROR),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace and returns a safe 500 response.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
        [
            ErrorDetail(
                code=ErrorCode.INTERNAL_ERROR,
                message=str(exc) if settings.debug else "Internal server error",
            )
        ],
        remediation="Please contact support with the request ID",
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Studio Memberships",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


from memberships.api.v1 import health, members, payments, plans, subscriptions, transactions  # noqa: E402

app.include_router(health.router, tags=["Health"])
app.include_router(plans.router, prefix="/v1", tags=["Plans"])
app.include_router(subscriptions.router, prefix="/v1", tags=["Subscriptions"])
app.include_router(members.router, prefix="/v1", tags=["Members"])
app.include_router(payments.router, prefix="/v1", tags=["Payments"])
app.include_router(transactions.router, prefix="/v1", tags=["Transactions"])
