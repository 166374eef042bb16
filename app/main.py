from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import settings
from app.core.errors import DomainError
from app.core.observability import (
    domain_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from app.db.session import engine
from app.routers import inventory, invoices, quotations

_LOCAL_ORIGIN_REGEX = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
_NON_PRODUCTION_ENVS = {"dev", "development", "test", "staging", "stage"}


def _cors_options() -> dict:
    origins = settings.cors_origins or ["http://localhost:3000"]
    wildcard = "*" in origins
    origin_regex = settings.cors_origin_regex
    if not origin_regex and settings.env.lower().strip() in _NON_PRODUCTION_ENVS:
        # Front-end dev servers pick a random localhost port.
        origin_regex = _LOCAL_ORIGIN_REGEX
    return {
        "allow_origins": ["*"] if wildcard else origins,
        "allow_origin_regex": origin_regex,
        "allow_credentials": not wildcard,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "FIFO inventory ledger and document numbering for small businesses.\n\n"
        "Every endpoint is scoped to one organization through the `X-Org-ID` header. "
        "Send `X-User-ID` to record who made a stock adjustment or created a document."
    ),
    swagger_ui_parameters={"displayRequestDuration": True, "defaultModelsExpandDepth": 1},
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "inventory", "description": "FIFO stock batches, deductions, adjustments, valuation, and low-stock alerts."},
        {"name": "invoices", "description": "Invoices numbered per fiscal year with gap reuse."},
        {"name": "quotations", "description": "Quotations numbered per fiscal year with gap reuse."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
for exc_class, handler in (
    (DomainError, domain_exception_handler),
    (RequestValidationError, validation_exception_handler),
    (HTTPException, http_exception_handler),
    (Exception, unhandled_exception_handler),
):
    app.add_exception_handler(exc_class, handler)
app.add_middleware(CORSMiddleware, **_cors_options())

for module in (inventory, invoices, quotations):
    app.include_router(module.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    """Database round trip; reports ``ok: false`` instead of failing."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
