import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from filevault.core.config import Settings
from filevault.core.container import build_container
from filevault.core.exceptions import CacheError, FileVaultError, RateLimitedError
from filevault.core.logging_config import setup_logging
from filevault.monitoring.setup import setup_monitoring
from filevault.routes import files, share_links, shared
from filevault.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings()
    setup_logging(settings.LOG_LEVEL)

    try:
        container = await build_container(settings)
    except Exception as e:
        logger.error(f"Initialization failed: {e}")
        raise
    app.state.container = container

    container.sweeper.start()
    logger.info("Background cleanup task started")

    yield

    await container.close()
    logger.info("Application shutdown complete")


async def handle_filevault_error(request: Request, exc: FileVaultError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
    detail = str(exc)
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc)
        detail = exc.detail
    return JSONResponse(status_code=exc.status_code, content={"detail": detail}, headers=headers)


def create_app() -> FastAPI:
    app = FastAPI(title="FileVault", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Retry-After"],
    )
    app.add_exception_handler(FileVaultError, handle_filevault_error)

    app.include_router(files, prefix="/api")
    app.include_router(share_links, prefix="/api")
    app.include_router(shared)

    if Settings.USE_LOCAL_STORAGE:
        # blobs on local disk are served under the path of their public URL
        mount_path = urlparse(Settings.LOCAL_STORAGE_BASE_URL).path.rstrip("/") or "/storage"
        app.mount(
            mount_path,
            StaticFiles(directory=Settings.LOCAL_STORAGE_PATH, check_dir=False),
            name="storage",
        )

    setup_monitoring(app)

    @app.get("/health")
    async def health_check(request: Request):
        container = request.app.state.container
        try:
            await container.repository.ping()
            db_status = "ok"
        except Exception as e:
            db_status = f"error: {e}"

        try:
            await container.storage.ping()
            storage_status = "ok"
        except Exception as e:
            storage_status = f"error: {e}"

        try:
            await container.cache_backend.ping()
            cache_status = "ok"
        except CacheError as e:
            cache_status = f"error: {e}"

        return {
            "status": "running",
            "timestamp": utcnow().isoformat(),
            "database": db_status,
            "storage": storage_status,
            "cache": cache_status,
        }

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        timeout_keep_alive=60,
        limit_concurrency=100,
    )
