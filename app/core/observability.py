import json
import logging
import time
import traceback
from contextvars import ContextVar
from uuid import uuid4

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.errors import DomainError

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
root_logger = logging.getLogger("bahi")
logger = logging.getLogger("bahi.api")

_STATUS_CODE_MAP = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
}


def setup_observability() -> None:
    """Attach one JSON-lines stream handler to the ``bahi`` logger tree."""
    if root_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)
    root_logger.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def log_event(target: logging.Logger, level: int, event: str, **fields) -> None:
    """Emit ``event`` and ``fields`` as a single JSON line on ``target``."""
    payload = {"event": event, "request_id": get_request_id(), **fields}
    target.log(level, json.dumps(payload, default=str))


def _request_id_for(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or get_request_id()
    )


def _error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = {
        "code": code,
        "message": message,
        "request_id": _request_id_for(request),
        "path": request.url.path,
        "details": details,
    }
    return JSONResponse(status_code=status_code, headers=headers, content={"error": body})


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        log_event(
            logger,
            logging.INFO,
            "request",
            org_id=request.headers.get("x-org-id"),
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        request_id_ctx.reset(token)

    response.headers["X-Request-ID"] = request_id
    response.headers["X-API-Timeout-Hint-Ms"] = str(settings.api_timeout_hint_ms)
    return response


async def domain_exception_handler(request: Request, exc: DomainError):
    # Server-side failures such as ledger drift need operator attention.
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    log_event(
        logger,
        level,
        "domain_error",
        request_id=_request_id_for(request),
        org_id=request.headers.get("x-org-id"),
        path=request.url.path,
        code=exc.code,
        error=exc.message,
    )
    return _error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, str):
        message, details = exc.detail, None
    else:
        message, details = "HTTP error", exc.detail
    return _error_response(
        request,
        status_code=exc.status_code,
        code=_STATUS_CODE_MAP.get(exc.status_code, "http_error"),
        message=message,
        details=details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", []) if part != "body"]
        details.append(
            {
                "field": ".".join(location) if location else "body",
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )
    return _error_response(
        request,
        status_code=422,
        code="validation_error",
        message="Validation failed",
        details=details,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    log_event(
        logger,
        logging.ERROR,
        "unhandled_exception",
        request_id=_request_id_for(request),
        path=request.url.path,
        error=str(exc),
        traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__, limit=10)),
    )
    return _error_response(
        request,
        status_code=500,
        code="internal_error",
        message="Internal server error",
    )
