import logging

from pydantic import ValidationError

from filevault.cache.base import CacheBackend
from filevault.core.exceptions import CacheError
from filevault.monitoring.setup import report_cache_lookup
from filevault.schemas.file import FileRecord, FileRecordList

logger = logging.getLogger(__name__)


def file_key(file_id: str) -> str:
    return f"file:{file_id}"


def user_files_key(user_id: int) -> str:
    return f"user_files:{user_id}"


class FileCache:
    """
    File metadata on top of a cache backend.

    Only single records and the first listing page of a user are cached. Every
    method is best-effort: a backend failure is logged and reported as a miss
    (reads) or ignored (writes and invalidations).
    """

    def __init__(self, cache: CacheBackend, ttl: float):
        self.cache = cache
        self.ttl = ttl

    async def get_file(self, file_id: str) -> FileRecord | None:
        key = file_key(file_id)
        try:
            data = await self.cache.get(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            data = None
        record = None
        if data is not None:
            try:
                record = FileRecord.model_validate_json(data)
            except ValidationError as e:
                logger.warning("Discarding undecodable cache entry %s: %s", key, e)
        report_cache_lookup("file", record is not None)
        return record

    async def set_file(self, record: FileRecord) -> None:
        key = file_key(record.id)
        try:
            await self.cache.set(key, record.model_dump_json().encode(), self.ttl)
        except CacheError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def invalidate_file(self, file_id: str) -> None:
        key = file_key(file_id)
        try:
            await self.cache.delete(key)
        except CacheError as e:
            logger.warning("Cache invalidation failed for %s: %s", key, e)

    async def get_user_files(self, user_id: int) -> list[FileRecord] | None:
        key = user_files_key(user_id)
        try:
            data = await self.cache.get(key)
        except CacheError as e:
            logger.warning("Cache read failed for %s: %s", key, e)
            data = None
        files = None
        if data is not None:
            try:
                files = FileRecordList.validate_json(data)
            except ValidationError as e:
                logger.warning("Discarding undecodable cache entry %s: %s", key, e)
        report_cache_lookup("user_files", files is not None)
        return files

    async def set_user_files(self, user_id: int, files: list[FileRecord]) -> None:
        key = user_files_key(user_id)
        try:
            await self.cache.set(key, FileRecordList.dump_json(files), self.ttl)
        except CacheError as e:
            logger.warning("Cache write failed for %s: %s", key, e)

    async def invalidate_user_files(self, user_id: int) -> None:
        key = user_files_key(user_id)
        try:
            await self.cache.delete(key)
        except CacheError as e:
            logger.warning("Cache invalidation failed for %s: %s", key, e)
