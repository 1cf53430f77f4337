import os
from typing import Optional
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from shipping_analytics.api.routes import router
from shipping_analytics.core.config import settings
from shipping_analytics.core.errors import (
    ConsigneeNotFound,
    DecodeError,
    EmptyDataset,
    NoDataLoaded,
    UnsupportedFormat,
)
from shipping_analytics.logging_config import setup_logging, RequestLoggingMiddleware, get_logger
from shipping_analytics.metrics import get_metrics, get_metrics_content_type, app_errors_total
from shipping_analytics.schemas import HealthStatus
from shipping_analytics.services.dataset import DatasetHandle, find_existing_dataset
import uvicorn

setup_logging(service_name=settings.SERVICE_NAME, level=settings.LOG_LEVEL)
logger = get_logger(__name__)

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8080",
    "http://localhost",
    "http://127.0.0.1",
]

# Error type -> HTTP status for failures the core reports to callers
ERROR_STATUS = {
    NoDataLoaded: 400,
    DecodeError: 400,
    UnsupportedFormat: 400,
    ConsigneeNotFound: 404,
    EmptyDataset: 404,
}


def create_app(dataset: Optional[DatasetHandle] = None) -> FastAPI:
    """
    Builds the API around a dataset handle (a fresh empty one by default).
    """
    app = FastAPI(title="Shipping Analytics API")
    app.state.dataset = dataset or DatasetHandle()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEFAULT_ORIGINS + settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Added after CORS so it wraps the actual request handling
    app.add_middleware(RequestLoggingMiddleware, logger=logger)

    app.include_router(router)

    Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/health"],
    ).instrument(app)

    for error_type, status_code in ERROR_STATUS.items():
        app.add_exception_handler(error_type, _core_error_handler(status_code))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Logs and counts anything the routes did not handle.
        """
        app_errors_total.labels(
            endpoint=request.url.path,
            error_type=type(exc).__name__
        ).inc()

        logger.error(
            f"Unhandled exception: {exc}",
            extra={
                "extra_fields": {
                    "endpoint": request.url.path,
                    "error_type": type(exc).__name__,
                    "method": request.method,
                }
            },
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    @app.on_event("startup")
    async def startup_event():
        """Reload the last uploaded dataset, if one is on disk."""
        logger.info(
            "Service started",
            extra={"extra_fields": {"event": "startup", "port": os.getenv("PORT", 3000)}},
        )
        existing = find_existing_dataset(settings.UPLOAD_DIR, settings.DATASET_BASENAME, settings.ALLOWED_EXTENSIONS)
        if existing is None:
            return
        try:
            app.state.dataset.load_path(existing)
        except (DecodeError, UnsupportedFormat, OSError) as e:
            logger.error(
                f"Could not reload {existing.name}, starting without data",
                extra={"extra_fields": {"event": "startup", "error": str(e)}},
            )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Service shutting down", extra={"extra_fields": {"event": "shutdown"}})

    @app.get("/")
    async def root():
        return {"message": "Welcome to the Shipping Analytics API"}

    @app.get("/health", response_model=HealthStatus)
    async def health_check():
        """Liveness probe; also reports whether a dataset is loaded."""
        dataset = app.state.dataset
        return HealthStatus(status="healthy", data_loaded=dataset.loaded, record_count=dataset.record_count)

    @app.get("/metrics")
    async def metrics():
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    return app


def _core_error_handler(status_code: int):
    async def handler(request: Request, exc: Exception):
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})
    return handler


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", 3000))
    uvicorn.run(app, host="0.0.0.0", port=port)
