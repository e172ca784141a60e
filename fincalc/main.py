"""
Fincalc API - FastAPI application

Serves the batch operations API. Storage, the API response cache and the
notification channel are built in the lifespan from settings unless the
caller supplies them (tests inject in-memory collaborators).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.endpoints.batch import router as batch_router
from .api.endpoints.health import router as health_router
from .constants import API_CACHE_NAMESPACE, APP_NAME, APP_VERSION
from .core.config import Settings, get_settings
from .core.correlation import CorrelationIdMiddleware
from .core.exceptions import FincalcException
from .core.logging import configure_logging
from .infrastructure.storage import KeyValueStore, create_key_value_store
from .services.batch import BatchResultAggregator, BatchService, ResourceRegistry
from .services.batch import create_default_registry
from .services.cache import ResultCache
from .services.notifications import (
    InMemoryNotificationChannel,
    NotificationChannel,
    RedisNotificationChannel,
)

logger = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    registry: Optional[ResourceRegistry] = None,
    channel: Optional[NotificationChannel] = None,
) -> FastAPI:
    """Build the application; omitted collaborators are created from settings."""
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting Fincalc API",
            version=settings.SERVICE_VERSION,
            environment=settings.ENVIRONMENT,
            storage=settings.STORAGE_BACKEND,
        )

        app_store = store or create_key_value_store(settings)
        app_channel = channel
        if app_channel is None:
            if settings.STORAGE_BACKEND == "redis":
                app_channel = RedisNotificationChannel(
                    Redis.from_url(settings.REDIS_URL, decode_responses=True)
                )
            else:
                app_channel = InMemoryNotificationChannel()

        api_cache = ResultCache(
            app_store,
            namespace=API_CACHE_NAMESPACE,
            max_entries=settings.API_CACHE_MAX_ENTRIES,
            default_ttl=settings.API_CACHE_TTL_SECONDS,
        )
        await api_cache.load()
        api_cache.start_cleanup(settings.CACHE_CLEANUP_INTERVAL_SECONDS)

        aggregator = BatchResultAggregator(
            api_cache, registry or create_default_registry(), app_channel
        )
        batch_service = BatchService.from_settings(aggregator, settings)

        app.state.settings = settings
        app.state.store = app_store
        app.state.api_cache = api_cache
        app.state.notification_channel = app_channel
        app.state.batch_service = batch_service

        logger.info("Fincalc API started successfully")

        yield

        logger.info("Shutting down Fincalc API")
        try:
            cancelled = await batch_service.controller.shutdown()
            if cancelled:
                logger.warning("Cancelled dangling batch operations", count=cancelled)
            await api_cache.stop_cleanup()
            # Injected collaborators belong to the caller
            if channel is None:
                await app_channel.close()
            if store is None:
                await app_store.close()
            logger.info("Application shutdown completed")
        except Exception as e:
            logger.error("Error during application shutdown", error=str(e))

    app = FastAPI(
        title=f"{APP_NAME} API",
        description="Calculation caching and batch operations service",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(health_router)
    app.include_router(batch_router)

    @app.exception_handler(FincalcException)
    async def fincalc_exception_handler(request: Request, exc: FincalcException):
        logger.warning(
            "Request failed",
            path=request.url.path,
            error_code=exc.error_code,
            error=exc.message,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "error": "Invalid request body",
                "error_code": "VALIDATION_ERROR",
                "details": {"errors": jsonable_errors(exc)},
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    return app


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_config=None,
    )
