# bulletin/main.py

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from bulletin.config import get_settings
from bulletin.errors import LifecycleError
from bulletin.logging_config import configure_logging, trace_context
from bulletin.routers import admin_archive_router, audit_router, content_router, time_router

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-Id"

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)
    logger.info(f"Starting bulletin API ({settings.ENVIRONMENT}, tz={settings.SCHOOL_TIMEZONE})")
    yield


app = FastAPI(title="School Bulletin Content API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_trace_id(request: Request, call_next):
    """Tag every log line of a request with one trace id, echoed back in the response."""
    with trace_context(request.headers.get(TRACE_HEADER)) as trace_id:
        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response


app.include_router(content_router)
app.include_router(admin_archive_router)
app.include_router(audit_router)
app.include_router(time_router)


# ---------------------------------------------------------------------------
# Error responses: {"success": false, "error": {"code": ..., "message": ...}}
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error_response(422, "VALIDATION_ERROR", "Request validation failed", details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "INTERNAL_ERROR" if exc.status_code >= 500 else "ERROR")
    return _error_response(exc.status_code, code, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Never leak SQL or driver text to clients
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return _error_response(500, "DATABASE_ERROR", "A database error occurred")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "bulletin-api"}
