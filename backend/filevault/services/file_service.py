from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from typing import Awaitable, BinaryIO, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from filevault.cache.file_cache import FileCache
from filevault.core.exceptions import (
    BlobNotFound,
    BlobStorageError,
    FileNotFound,
    ForbiddenError,
    InvalidInputError,
    ShareLinkNotFound,
    UpstreamError,
)
from filevault.repositories.file_repository import FileRepository
from filevault.schemas.file import FileRecord, FileSearch, FileUpdate, ShareResponse
from filevault.storage.base import BlobStore
from filevault.utils.timeutils import expiry_from, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

SHARE_TOKEN_BYTES = 24


@dataclass
class SweepResult:
    candidates: int = 0
    deleted: int = 0
    failed: int = 0


class FileService:
    """
    File lifecycle across the blob store, the metadata store and the cache.

    The metadata store is the source of truth. Blob writes happen before the
    metadata insert and blob deletes before the metadata delete, so a visible
    row never points at a blob that was already removed, except for the single
    window where the row delete itself fails. Cache entries are invalidated
    after every durable write, never patched in place.
    """

    def __init__(
        self,
        repository: FileRepository,
        storage: BlobStore,
        cache: FileCache,
        base_share_url: str,
        io_timeout: float = 30.0,
        default_page_size: int = 20,
        max_page_size: int = 100,
        max_file_size: int | None = None,
    ):
        self.repository = repository
        self.storage = storage
        self.cache = cache
        self.base_share_url = base_share_url.rstrip("/")
        self.io_timeout = io_timeout
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.max_file_size = max_file_size

    async def _io(self, what: str, call: Awaitable[T]) -> T:
        """Run one blob/metadata call under the I/O timeout, mapping failures to UpstreamError."""
        try:
            return await asyncio.wait_for(call, self.io_timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamError(f"{what} timed out after {self.io_timeout}s") from e
        except BlobNotFound:
            raise
        except BlobStorageError as e:
            raise UpstreamError(f"{what} failed: {e}") from e
        except SQLAlchemyError as e:
            raise UpstreamError(f"{what} failed: {e}") from e

    async def _delete_blob(self, storage_key: str) -> None:
        try:
            await self._io("blob delete", self.storage.delete(storage_key))
        except BlobNotFound:
            logger.info("Blob %s already absent, treating delete as done", storage_key)

    async def _invalidate(self, file_id: str, owner_id: int) -> None:
        await self.cache.invalidate_file(file_id)
        await self.cache.invalidate_user_files(owner_id)

    async def _load_owned(self, file_id: str, user_id: int) -> FileRecord:
        record = await self._io("metadata read", self.repository.get_file(file_id))
        if record is None:
            raise FileNotFound()
        if record.owner_id != user_id:
            raise ForbiddenError()
        return record

    def _check_page(self, limit: int, offset: int) -> None:
        if limit < 1 or limit > self.max_page_size or offset < 0:
            raise InvalidInputError("Pagination out of range")

    async def upload_file(
        self,
        user_id: int,
        name: str,
        size: int,
        content_type: str | None,
        content: BinaryIO,
        expires_in: str | None = None,
    ) -> FileRecord:
        name = (name or "").strip()
        if not name or content is None:
            raise InvalidInputError("No file provided")
        if size < 0 or (self.max_file_size is not None and size > self.max_file_size):
            raise InvalidInputError("File size out of range")
        expires_at = expiry_from(expires_in)
        content_type = content_type or "application/octet-stream"

        storage_key, public_url = await self._io(
            "blob upload", self.storage.put(content, name, content_type)
        )

        try:
            record = await self._io(
                "metadata insert",
                self.repository.create_file(
                    owner_id=user_id,
                    name=name,
                    size=size,
                    content_type=content_type,
                    storage_key=storage_key,
                    public_url=public_url,
                    expires_at=expires_at,
                ),
            )
        except UpstreamError:
            try:
                await self._delete_blob(storage_key)
            except UpstreamError as cleanup_error:
                logger.error("Orphaned blob %s after failed metadata insert: %s", storage_key, cleanup_error)
            raise

        await self.cache.invalidate_user_files(user_id)
        await self.cache.set_file(record)
        logger.info("Uploaded file %s (%s bytes) for user %s", record.id, size, user_id)
        return record

    async def get_file(self, file_id: str, user_id: int | None = None) -> FileRecord:
        """
        Cache-first read by id. With ``user_id``, a private file of another owner
        is reported as not found.
        """
        record = await self.cache.get_file(file_id)
        if record is None:
            record = await self._io("metadata read", self.repository.get_file(file_id))
            if record is None:
                raise FileNotFound()
            await self.cache.set_file(record)

        if user_id is not None and record.owner_id != user_id and not record.is_public:
            raise FileNotFound()
        return record

    async def get_shared_file(self, token: str) -> FileRecord:
        link = await self._io("share lookup", self.repository.get_share_link(token))
        if link is None or link.is_expired(utcnow()):
            raise ShareLinkNotFound()
        try:
            return await self.get_file(link.file_id)
        except FileNotFound as e:
            raise ShareLinkNotFound() from e

    async def list_user_files(self, user_id: int, limit: int | None = None, offset: int = 0) -> list[FileRecord]:
        """Owner listing. Only the first page at the default size goes through the cache."""
        limit = limit or self.default_page_size
        self._check_page(limit, offset)
        cacheable = offset == 0 and limit == self.default_page_size

        if cacheable:
            files = await self.cache.get_user_files(user_id)
            if files is not None:
                return files

        files = await self._io("metadata list", self.repository.list_files(user_id, limit, offset))
        if cacheable:
            await self.cache.set_user_files(user_id, files)
        return files

    async def search_files(self, user_id: int, search: FileSearch) -> list[FileRecord]:
        # dynamic filters are never cached
        self._check_page(search.limit, search.offset)
        return await self._io("metadata search", self.repository.search_files(user_id, search))

    async def update_file(self, file_id: str, user_id: int, changes: FileUpdate) -> FileRecord:
        record = await self._load_owned(file_id, user_id)

        name = record.name
        if changes.provided("name"):
            name = changes.name.strip()
            if not name:
                raise InvalidInputError("Name must not be empty")
        is_public = changes.is_public if changes.provided("is_public") else record.is_public
        expires_at = record.expires_at
        if "expires_in" in changes.model_fields_set:
            # an empty or null value clears the expiry
            expires_at = expiry_from(changes.expires_in)

        updated_at = utcnow()
        count = await self._io(
            "metadata update",
            self.repository.update_file(file_id, user_id, name, is_public, expires_at, updated_at),
        )
        if count == 0:
            raise FileNotFound()

        await self._invalidate(file_id, user_id)
        return record.model_copy(
            update={"name": name, "is_public": is_public, "expires_at": expires_at, "updated_at": updated_at}
        )

    async def delete_file(self, file_id: str, user_id: int) -> None:
        record = await self._load_owned(file_id, user_id)

        # the blob goes first; a failure here leaves everything untouched
        await self._delete_blob(record.storage_key)

        try:
            count = await self._io("metadata delete", self.repository.delete_file(file_id, user_id))
        except UpstreamError:
            logger.error("Blob %s removed but metadata row %s remains", record.storage_key, file_id)
            await self._invalidate(file_id, user_id)
            raise
        await self._invalidate(file_id, user_id)
        if count == 0:
            raise FileNotFound()
        logger.info("Deleted file %s for user %s", file_id, user_id)

    async def share_file(self, file_id: str, user_id: int, expires_in: str | None = None) -> ShareResponse:
        record = await self.get_file(file_id)
        if record.owner_id != user_id:
            raise ForbiddenError()
        expires_at = expiry_from(expires_in)

        token = secrets.token_urlsafe(SHARE_TOKEN_BYTES)
        link = await self._io("share create", self.repository.create_share_link(file_id, token, expires_at))
        return ShareResponse(
            share_url=f"{self.base_share_url}/shared/{link.token}",
            token=link.token,
            expires_at=link.expires_at,
        )

    async def cleanup_expired_files(self, batch_size: int) -> SweepResult:
        """
        Delete up to ``batch_size`` expired files: blobs one by one, then the rows
        whose blobs are gone in one bulk delete. A file whose blob delete fails is
        skipped and stays eligible for the next pass.
        """
        now = utcnow()
        expired = await self._io("expired listing", self.repository.get_expired_files(batch_size, now))
        result = SweepResult(candidates=len(expired))

        removed: list[FileRecord] = []
        for record in expired:
            try:
                await self._delete_blob(record.storage_key)
            except Exception as e:
                result.failed += 1
                logger.warning("Expired file %s: blob delete failed, will retry: %s", record.id, e)
                continue
            removed.append(record)

        if not removed:
            return result
        try:
            deleted_ids = await self._io(
                "expired delete",
                self.repository.delete_expired_files([r.id for r in removed], now),
            )
            result.deleted = len(deleted_ids)
            kept = {r.id for r in removed} - set(deleted_ids)
            for record in removed:
                if record.id in kept:
                    # expiry was extended after the blob went; no later sweep picks it up
                    logger.error("Blob %s removed but metadata row %s is no longer expired and remains",
                                 record.storage_key, record.id)
        finally:
            for record in removed:
                await self._invalidate(record.id, record.owner_id)
        return result
