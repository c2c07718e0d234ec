import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

cleanup_runs = Counter("cleanup_runs_total", "Expiry sweep ticks")
cleanup_files_deleted = Counter("cleanup_files_deleted_total", "Files deleted by the expiry sweep")
cleanup_failed_deletes = Counter("cleanup_failed_deletes_total", "Blob deletes that failed during the expiry sweep")
cleanup_duration = Histogram("cleanup_duration_seconds", "Duration of an expiry sweep tick in seconds")
cache_requests = Counter("file_cache_requests_total", "File cache lookups", ["kind", "result"])
rate_limited_requests = Counter("rate_limited_requests_total", "Requests rejected by the rate limiter")


def report_cleanup(files_deleted: int, failed: int, duration: float) -> None:
    """Record expiry sweep metrics to Prometheus."""
    cleanup_runs.inc()
    if files_deleted:
        cleanup_files_deleted.inc(files_deleted)
    if failed:
        cleanup_failed_deletes.inc(failed)
    cleanup_duration.observe(duration)


def report_cache_lookup(kind: str, hit: bool) -> None:
    cache_requests.labels(kind=kind, result="hit" if hit else "miss").inc()


def report_rate_limited() -> None:
    rate_limited_requests.inc()


def setup_monitoring(app: ASGIApp):
    Instrumentator().instrument(app).expose(app, endpoint="/api/metrics", include_in_schema=False)

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        start_time = time.time()
        response = None
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception("Unhandled error: %s %s -> %s", request.method, request.url.path, e)
            response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        finally:
            process_time = time.time() - start_time
            logger.info("method=%s path=%s status=%s duration=%.4fs",
                        request.method, request.url.path,
                        getattr(response, "status_code", "?"), process_time)
        return response
