import asyncio
import sys
import time
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.collection import Collection

from .config import Settings, settings
from .routes.conversion import error_response, health_router, router as conversion_router
from .services.catalog_service import CatalogService
from .services.converter_service import ConverterService
from .services.download_service import DownloadResolver
from .services.retention_service import RetentionService
from .services.upload_service import UploadReceiver
from .utils.errors import ServiceError, StorageAccessError
from .utils.logging import logger
from .utils.mongo import MongoDBManager


def _prepare_directories(app_settings: Settings) -> None:
    for directory in (app_settings.upload_dir_path, app_settings.pdf_dir_path):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.log_error("storage_directory_unavailable", {
                "directory": str(directory),
                "error": str(exc)
            })
            raise StorageAccessError(path=str(directory)) from exc
    logger.log_step("storage_directories_ready", {
        "upload_dir": str(app_settings.upload_dir_path),
        "pdf_dir": str(app_settings.pdf_dir_path)
    })


def create_app(app_settings: Settings = settings, catalog_collection: Optional[Collection] = None) -> FastAPI:
    """Build the conversion service with every component bound to ``app_settings``."""
    mongo = MongoDBManager(app_settings)
    catalog = CatalogService(app_settings, mongo=mongo, collection=catalog_collection)
    retention = RetentionService(app_settings, catalog=catalog)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.log_step("starting_conversion_service", {
            "host": app_settings.APP_HOST,
            "port": app_settings.APP_PORT,
            "debug": app_settings.DEBUG,
            "python_version": sys.version,
            "ttl_seconds": app_settings.RECORD_TTL_SECONDS
        })

        _prepare_directories(app_settings)

        if app_settings.CATALOG_ENABLED:
            try:
                if catalog_collection is None:
                    await run_in_threadpool(mongo.connect)
                await run_in_threadpool(catalog.ensure_indexes)
                logger.log_step("catalog_initialized", {"status": "success"})
            except Exception as e:
                # Downloads only depend on the filesystem; keep serving without a catalog
                logger.log_error("catalog_initialization_failed", {"error": str(e)})

        reaper = None
        if app_settings.REAPER_ENABLED:
            reaper = asyncio.create_task(retention.run_forever(app_settings.REAPER_INTERVAL_SECONDS))

        yield

        if reaper is not None:
            reaper.cancel()
            with suppress(asyncio.CancelledError):
                await reaper
        mongo.close()
        logger.log_step("conversion_service_shutdown")

    app = FastAPI(
        title=app_settings.SERVICE_NAME,
        description="Image to PDF conversion microservice with time-bounded retention.",
        version=app_settings.SERVICE_VERSION,
        lifespan=lifespan
    )

    app.state.upload_receiver = UploadReceiver(app_settings)
    app.state.converter = ConverterService(app_settings)
    app.state.catalog = catalog
    app.state.download_resolver = DownloadResolver(app_settings, catalog=catalog)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=app_settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.log_step("request_completed", {
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "process_time": process_time
        })

        return response

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        logger.log_error("request_failed", {
            "method": request.method,
            "url": str(request.url),
            "error": exc.kind.value,
            "context": exc.context
        })
        return error_response(exc)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.log_error("unhandled_exception", {
            "method": request.method,
            "url": str(request.url),
            "error": str(exc)
        })

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    app.include_router(conversion_router)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        return {
            "message": app_settings.SERVICE_NAME,
            "version": app_settings.SERVICE_VERSION,
            "endpoints": {
                "health": "/api/health",
                "convert": "/api/convert",
                "download": "/api/convert/download/{filename}",
                "docs": "/docs"
            }
        }

    return app


app = create_app()
