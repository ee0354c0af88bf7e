"""
RestBase: FastAPI Application Factory
======================================

What:  Creates and configures a FastAPI application serving a set of
       resources.
How:   create_app(resources) registers middleware, exception handlers, the
       health route and one router per ResourceController.
Who:   Called by the host project, e.g. `uvicorn myproject.app:app` where
       `app = create_app(resources=[books, authors])`.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                   FastAPI App                        │
    │                                                      │
    │  Middleware Chain:                                   │
    │  ┌──────────┐ ┌──────────┐ ┌──────┐ ┌──────┐         │
    │  │  Req ID  │→│ Logging  │→│ GZip │→│ CORS │         │
    │  └──────────┘ └──────────┘ └──────┘ └──────┘         │
    │                                                      │
    │  Routes:                                             │
    │  ┌───────────────────────────────┐ ┌─────────────┐   │
    │  │ /<resource> CRUD (per model)  │ │ GET /health │   │
    │  └───────────────────────────────┘ └─────────────┘   │
    │                                                      │
    │  Exception Handlers:                                 │
    │  Validation→400 │ NotFound→404 │ Integrity→409 │ 500 │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:   configure logging, log mounted resources
    Shutdown:  dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from restbase import __version__
from restbase.config import settings
from restbase.database import dispose_engine
from restbase.exceptions import (
    NotFoundError,
    ResourceConfigurationError,
    RestBaseError,
    ValidationError,
)
from restbase.middleware.logging import RequestLoggingMiddleware
from restbase.middleware.request_id import RequestIDMiddleware, request_id_var
from restbase.resources.controller import ResourceController
from restbase.routes import health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole process.

    Format: 2024-01-15T12:00:00 [INFO] restbase.resources.controller: Created Book 7
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-query and per-request chatter from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("RestBase %s starting up...", __version__)
    for resource in app.state.resources:
        logger.info("Mounted %s at %s", resource.name, resource.prefix)
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("RestBase shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(code: str, reason: str, details: Optional[dict] = None) -> dict:
    return {
        "error": {
            "code": code,
            "reason": reason,
            "details": details or None,
            "request_id": request_id_var.get(""),
        }
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the error envelope.

    Handler hierarchy:
        ValidationError             → 400 Bad Request
        NotFoundError               → 404 Not Found
        IntegrityError (store)      → 409 Conflict
        ResourceConfigurationError  → 500 (details logged, not returned)
        RestBaseError (base)        → 500
        Exception (fallback)        → 500, stack trace logged

    Handlers never expose stack traces, SQL or file paths in the response.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=error_body("not_found", exc.message))

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("[%s] Constraint violation: %s", request_id_var.get(""), exc.orig)
        return JSONResponse(
            status_code=409,
            content=error_body("constraint_violation", "The record violates a data constraint"),
        )

    @app.exception_handler(ResourceConfigurationError)
    async def handle_configuration_error(request: Request, exc: ResourceConfigurationError):
        logger.error(
            "[%s] Resource configuration error: %s | Context: %s",
            request_id_var.get(""),
            exc.message,
            exc.context,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("configuration_error", "The resource is not configured correctly"),
        )

    @app.exception_handler(RestBaseError)
    async def handle_restbase_error(request: Request, exc: RestBaseError):
        logger.error("[%s] %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=500, content=error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s",
            request_id_var.get(""),
            str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    resources: Iterable[ResourceController] = (),
    *,
    title: str = "RestBase API",
    version: str = __version__,
) -> FastAPI:
    """
    Create a FastAPI application exposing `resources`.

    Each resource contributes its router; two resources may not share a
    prefix.

    Raises:
        ValueError: duplicate resource prefixes
    """
    resources = list(resources)
    prefixes = [resource.prefix for resource in resources]
    duplicates = sorted({prefix for prefix in prefixes if prefixes.count(prefix) > 1})
    if duplicates:
        raise ValueError(f"Duplicate resource prefixes: {', '.join(duplicates)}")

    app = FastAPI(
        title=title,
        description="Generic CRUD endpoints over SQLAlchemy record types.",
        version=version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.resources = resources

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "X-Resource-ID"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    for resource in resources:
        app.include_router(resource.router)

    return app


def serve(app: FastAPI) -> None:
    """Run `app` with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run(
        app,
        host=settings.backend_host,
        port=settings.backend_port,
        log_level=settings.log_level.lower(),
    )
