import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from filevault.cache.base import CacheBackend
from filevault.cache.file_cache import FileCache
from filevault.cache.memory import MemoryCache
from filevault.cache.redis_cache import RedisCache
from filevault.core.config import Settings
from filevault.core.database import create_engine, create_session_factory, init_models
from filevault.repositories.file_repository import FileRepository
from filevault.services.file_service import FileService
from filevault.services.rate_limiter import RateLimiter
from filevault.storage.base import BlobStore
from filevault.storage.local import LocalBlobStore
from filevault.storage.minio_store import MinioBlobStore, build_minio_client
from filevault.tasks.cleanup import ExpirySweeper

logger = logging.getLogger(__name__)


@dataclass
class Container:
    """Store and cache handles shared by every component, built once per process."""

    settings: Settings
    engine: AsyncEngine
    repository: FileRepository
    storage: BlobStore
    cache_backend: CacheBackend
    file_cache: FileCache
    file_service: FileService
    rate_limiter: RateLimiter
    sweeper: ExpirySweeper

    async def close(self) -> None:
        await self.sweeper.stop()
        await self.cache_backend.close()
        await self.engine.dispose()


def build_storage(settings: Settings) -> BlobStore:
    if settings.USE_LOCAL_STORAGE:
        return LocalBlobStore(settings.LOCAL_STORAGE_PATH, settings.LOCAL_STORAGE_BASE_URL)
    client = build_minio_client(
        settings.MINIO_ENDPOINT,
        settings.MINIO_ACCESS_KEY,
        settings.MINIO_SECRET_KEY,
        secure=settings.MINIO_SECURE,
    )
    storage = MinioBlobStore(client, settings.MINIO_BUCKET, settings.MINIO_PUBLIC_URL)
    storage.ensure_bucket()
    return storage


async def build_cache(settings: Settings) -> CacheBackend:
    if settings.REDIS_URL:
        cache = RedisCache.from_url(settings.REDIS_URL, timeout=settings.CACHE_TIMEOUT_SECONDS)
        await cache.ping()
        logger.info("Using Redis cache")
    else:
        cache = MemoryCache(sweep_interval=settings.CACHE_SWEEP_INTERVAL_SECONDS)
        logger.info("Using in-process cache")
    await cache.start()
    return cache


async def build_container(settings: Settings) -> Container:
    engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    await init_models(engine)
    repository = FileRepository(create_session_factory(engine))
    logger.info("Database initialized successfully")

    storage = build_storage(settings)
    cache_backend = await build_cache(settings)
    file_cache = FileCache(cache_backend, ttl=settings.CACHE_TTL_SECONDS)

    file_service = FileService(
        repository,
        storage,
        file_cache,
        base_share_url=settings.BASE_SHARE_URL,
        io_timeout=settings.IO_TIMEOUT_SECONDS,
        default_page_size=settings.DEFAULT_PAGE_SIZE,
        max_page_size=settings.MAX_PAGE_SIZE,
        max_file_size=settings.MAX_FILE_SIZE,
    )
    rate_limiter = RateLimiter(
        cache_backend,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    sweeper = ExpirySweeper(
        file_service,
        interval=settings.CLEANUP_INTERVAL_SECONDS,
        batch_size=settings.CLEANUP_BATCH_SIZE,
        tick_timeout=settings.CLEANUP_TICK_TIMEOUT_SECONDS,
    )
    return Container(
        settings=settings,
        engine=engine,
        repository=repository,
        storage=storage,
        cache_backend=cache_backend,
        file_cache=file_cache,
        file_service=file_service,
        rate_limiter=rate_limiter,
        sweeper=sweeper,
    )
