"""FastAPI application factory for the Orderflow order-lifecycle API."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from orderflow.config import settings
from orderflow.database.engine import engine
from orderflow.exceptions import AppException, StateConflictException

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Keyed by client IP address
limiter = Limiter(key_func=get_remote_address, default_limits=["120/minute"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await engine.dispose()


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list | None = None,
    blockers: list[str] | None = None,
) -> JSONResponse:
    """Build ``{"error": {code, message, details, requestId, blockers?}}``."""
    body = {
        "code": code,
        "message": message,
        "details": details or [],
        "requestId": getattr(request.state, "request_id", "unknown"),
    }
    if blockers is not None:
        body["blockers"] = blockers
    return JSONResponse(status_code=status_code, content={"error": body})


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return _error_response(
        request,
        exc.status_code,
        exc.code,
        exc.message,
        details=exc.details,
        blockers=exc.blockers if isinstance(exc, StateConflictException) else None,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return _error_response(request, 422, "VALIDATION_ERROR", "Validation failed", details=details)


async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return _error_response(request, 429, "RATE_LIMITED", str(exc.detail))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    application = FastAPI(
        title="Orderflow Order Lifecycle API",
        description="Multi-tenant order intake, piece tracking, workflow and split engine.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    application.state.limiter = limiter

    # Last added runs outermost: request ID wraps CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    from orderflow.middleware.request_id import RequestIdMiddleware

    application.add_middleware(RequestIdMiddleware)

    from orderflow.api.v1 import v1_router

    application.include_router(v1_router)

    application.add_exception_handler(AppException, handle_app_exception)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(RateLimitExceeded, handle_rate_limit)
    application.add_exception_handler(Exception, handle_unexpected_error)

    @application.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    return application


app = create_app()
