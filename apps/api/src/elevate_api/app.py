from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from elevate_api.core.settings import settings
from elevate_api.db.session import engine
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Elevate API starting",
        org_timezone=settings.org_timezone,
        learn_tags=sorted(settings.allowed_learn_tags),
        kajabi_signature_required=bool(settings.kajabi_webhook_secret),
    )
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Elevate API stopped")


def create_app() -> FastAPI:
    """Application factory for the Elevate LEAPS points service."""
    configure_logging(
        service_name="elevate-api",
        environment=settings.environment,
        version=APP_VERSION,
    )

    app = FastAPI(
        title="Elevate LEAPS API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="elevate-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
