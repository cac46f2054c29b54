"""
BankEase API Application Factory
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import BankEaseConfig, get_config
from ..errors import BankingError, InvalidInputError, InternalError
from ..logging_config import (
    setup_logging, get_logger, log_action, set_correlation_id, reset_correlation_id
)
from .auth import BankingSystem
from .rate_limit import RateLimiter, RateLimitRule
from .identity import router as identity_router
from .transactions import router as transactions_router


logger = get_logger("bankease.api")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return InvalidInputError.default_message
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def create_app(system: Optional[BankingSystem] = None,
               config: Optional[BankEaseConfig] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    The app owns ``system``: it is built here when not supplied and closed
    when the app shuts down.
    """
    if system is None:
        config = config or get_config()
        setup_logging(config.log_level, fmt=config.log_format)
        system = BankingSystem(config)
    config = system.config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_action(
            logger, "info", "BankEase API starting",
            action="startup", extra={"storage": system.storage.backend_name}
        )
        yield
        app.state.banking_system.close()
        log_action(logger, "info", "BankEase API stopped", action="shutdown")

    app = FastAPI(
        title="BankEase API",
        description="Mobile banking backend: accounts, transfers, bill payments and statements",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.banking_system = system

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Idempotency-Key", "X-Request-ID"],
    )

    if config.rate_limit_enabled:
        app.middleware("http")(RateLimiter(
            rules=[
                RateLimitRule("/api/", config.rate_limit_max_requests),
                RateLimitRule(
                    "/api/auth/", config.auth_rate_limit_max_requests,
                    "Too many authentication attempts, please try again later."
                ),
            ],
            window_seconds=config.rate_limit_window_seconds
        ))

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        token = set_correlation_id(correlation_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = correlation_id
            log_action(
                logger, "debug", f"{request.method} {request.url.path} -> {response.status_code}",
                action="http_request"
            )
        finally:
            reset_correlation_id(token)
        return response

    @app.exception_handler(BankingError)
    async def banking_error_handler(request: Request, exc: BankingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        error = InvalidInputError(_validation_message(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        log_action(
            logger, "error", f"Unhandled error: {type(exc).__name__}",
            correlation_id=getattr(request.state, "correlation_id", None),
            action="unhandled_error", resource=request.url.path
        )
        error = InternalError()
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    # Include routers
    app.include_router(identity_router, prefix="/api/auth", tags=["Auth"])
    app.include_router(transactions_router, prefix="/api/transactions", tags=["Transactions"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "success": True,
            "status": "healthy",
            "service": "bankease_api",
            "version": __version__,
            "storage": app.state.banking_system.storage.backend_name,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "BankEase API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/api/auth",
                "transactions": "/api/transactions"
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    uvicorn.run(
        "bankease.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level="info"
    )
