"""
Household Push Dispatch: FastAPI Application Factory
====================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       lifespan() owns the long-lived resources.
Who:   uvicorn push_dispatch.main:app

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:   [Request ID] → [Access Log]               │
    │                                                          │
    │  Routes:                                                 │
    │   POST /dispatch   POST /push-new-image                  │
    │   POST /push-new-message   POST|DELETE /devices          │
    │   GET /health                                            │
    │                                                          │
    │  app.state (lifespan):                                   │
    │   http_client        shared httpx.AsyncClient            │
    │   token_minter       access-token cache lives here       │
    │   delivery_protocol  LegacyKey | ServiceAccount | None   │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → config validation → protocol → HTTP client + minter
    Shutdown: close HTTP client → dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from push_dispatch import __version__
from push_dispatch.config import settings
from push_dispatch.credentials import ServiceAccount
from push_dispatch.database import dispose_engine
from push_dispatch.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ContentNotFound,
    CredentialExchangeError,
    NetworkTimeout,
    PushDispatchError,
    ResolutionError,
    ValidationError,
)
from push_dispatch.middleware.logging import RequestLoggingMiddleware
from push_dispatch.middleware.request_id import (
    RequestIDLogFilter,
    RequestIDMiddleware,
    request_id_var,
)
from push_dispatch.routes import devices, dispatch, health
from push_dispatch.services.token_minter import TokenMinter

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure root logging once: stdout, request ID on every line.

    Format: 2024-01-15T12:00:00 [INFO] push_dispatch.services.dispatcher [a1b2c3d4] ...
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # httpx logs every request URL at INFO, which includes the FCM project
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

def load_delivery_protocol():
    """
    Build the protocol at startup without refusing to boot.

    A service without credentials still answers /health and no-op dispatches;
    a dispatch that needs to send fails with ConfigurationError.
    """
    try:
        protocol = settings.build_delivery_protocol()
    except ConfigurationError as e:
        logger.warning("Push delivery disabled: %s", e.message)
        return None

    if isinstance(protocol, ServiceAccount):
        try:
            protocol.credential.load_private_key()
        except ConfigurationError as e:
            # Kept: each run will surface this as a credential exchange error
            logger.error("Service account key is unusable: %s", e.context.get("error", e.message))
    logger.info("Delivery protocol: %s", protocol.name)
    return protocol


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Household Push Dispatch %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", e)

    async with httpx.AsyncClient(
        timeout=settings.http_timeout,
        limits=httpx.Limits(max_connections=settings.fanout_concurrency * 2),
    ) as client:
        app.state.http_client = client
        app.state.delivery_protocol = load_delivery_protocol()
        app.state.token_minter = TokenMinter(
            client,
            token_url=settings.oauth_token_url,
            scope=settings.oauth_scope,
            assertion_ttl=settings.oauth_assertion_ttl,
            timeout=settings.http_timeout,
            cache_enabled=settings.access_token_cache_enabled,
            refresh_margin=settings.access_token_refresh_margin,
            retry_attempts=settings.oauth_retry_attempts,
            retry_min_wait=settings.oauth_retry_min_wait,
            retry_max_wait=settings.oauth_retry_max_wait,
        )
        logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
        logger.info("=" * 60)

        yield

        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Household Push Dispatch shutting down...")

    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "") or request_id_var.get("")


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Body format shared by every error: {error, message, request_id, details?}."""
    content: Dict[str, Any] = {
        "error": error,
        "message": message,
        "request_id": _request_id(request),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy:
        ValidationError / RequestValidationError → 400
        AuthenticationError                      → 401
        ContentNotFound                          → 404
        ConfigurationError                       → 500
        CredentialExchangeError                  → 502 (provider body in details)
        ResolutionError                          → 503 (SQL details logged only)
        NetworkTimeout                           → 504
        PushDispatchError / Exception            → 500
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        logger.warning("Malformed request to %s: %s", request.url.path, errors)
        return error_response(
            request, 400, "validation_error", "Request body is invalid", {"errors": errors}
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        return error_response(request, 400, "validation_error", exc.message, exc.context)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return error_response(request, 401, "unauthorized", exc.message)

    @app.exception_handler(ContentNotFound)
    async def handle_content_not_found(request: Request, exc: ContentNotFound):
        logger.info("Content not found: %s", exc.content_id)
        return error_response(request, 404, "content_not_found", exc.message, exc.context)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error("Configuration error: %s | %s", exc.message, exc.context)
        return error_response(request, 500, "configuration_error", exc.message, exc.context)

    @app.exception_handler(CredentialExchangeError)
    async def handle_credential_error(request: Request, exc: CredentialExchangeError):
        logger.error("Credential exchange failed: %s | %s", exc.message, exc.context)
        return error_response(request, 502, "credential_exchange_failed", exc.message, exc.context)

    @app.exception_handler(ResolutionError)
    async def handle_resolution_error(request: Request, exc: ResolutionError):
        logger.error("Resolution error: %s | %s", exc.message, exc.context)
        return error_response(request, 503, "resolution_error", exc.message)

    @app.exception_handler(NetworkTimeout)
    async def handle_network_timeout(request: Request, exc: NetworkTimeout):
        logger.error("Network timeout: %s | %s", exc.message, exc.context)
        return error_response(request, 504, "network_timeout", exc.message)

    @app.exception_handler(PushDispatchError)
    async def handle_dispatch_error(request: Request, exc: PushDispatchError):
        logger.error("Unhandled dispatch error: %s | %s", exc.message, exc.context)
        return error_response(request, 500, "server_error", exc.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", exc, exc_info=True)
        return error_response(
            request,
            500,
            "internal_server_error",
            "An unexpected error occurred.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Household Push Dispatch",
        description=(
            "Fans new-photo and new-message notifications out to the devices "
            "of every other household member over FCM."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Last added runs first: RequestID wraps the access log
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(dispatch.router)
    app.include_router(devices.router)
    app.include_router(health.router)

    return app


app = create_app()
