"""
FastAPI application factory.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from legacy_import.api.router import api_router
from legacy_import.config import settings
from legacy_import.errors import LegacyImportError
from legacy_import.models.database import close_db
from legacy_import.observability.logging import clear_context, setup_logging
from legacy_import.worker.dispatch import InlineDispatcher, get_dispatcher

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    setup_logging()

    if settings.SENTRY_DSN:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            integrations=[FastApiIntegration()],
            traces_sample_rate=0.1,
            environment=settings.ENVIRONMENT,
        )

    logger.info(
        "app_started",
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        extraction_backend=settings.EXTRACTION_BACKEND,
    )

    yield

    dispatcher = get_dispatcher()
    if isinstance(dispatcher, InlineDispatcher):
        await dispatcher.drain()
    await close_db()


async def legacy_import_error_handler(request: Request, exc: LegacyImportError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error_code=exc.error_code, error=exc.message)
    else:
        logger.info("request_rejected", path=request.url.path, error_code=exc.error_code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "ERR_BAD_REQUEST", "message": "Invalid request", "details": details},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    message = "Internal server error" if settings.is_production else f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content={"error": "ERR_INTERNAL", "message": message})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Legacy Import Engine",
        description="Batch allocation, document clustering and cluster validation for legacy mailbox imports.",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def reset_log_context(request: Request, call_next):
        clear_context()
        return await call_next(request)

    app.add_exception_handler(LegacyImportError, legacy_import_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Prometheus metrics endpoint
    if settings.PROMETHEUS_ENABLED:
        from prometheus_client import make_asgi_app
        metrics_app = make_asgi_app()
        app.mount("/metrics", metrics_app)

    app.include_router(api_router)

    return app


# Application instance
app = create_app()
