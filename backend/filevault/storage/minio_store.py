import logging
from typing import BinaryIO

from minio import Minio
from minio.error import S3Error
from starlette.concurrency import run_in_threadpool
from urllib3.exceptions import HTTPError

from filevault.core.exceptions import BlobNotFound, BlobStorageError
from filevault.storage.base import BlobStore, generate_storage_key

logger = logging.getLogger(__name__)

KEY_PREFIX = "uploads"
PART_SIZE = 10 * 1024 * 1024
_MISSING_CODES = {"NoSuchKey", "NoSuchObject"}


def build_minio_client(endpoint: str, access_key: str, secret_key: str, secure: bool = False) -> Minio:
    return Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)


class MinioBlobStore(BlobStore):
    """Blobs as objects in a MinIO / S3 bucket under ``uploads/YYYY/MM/DD/``."""

    def __init__(self, client: Minio, bucket: str, public_url: str):
        self.client = client
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")

    def ensure_bucket(self) -> None:
        """Verify the bucket once at startup, creating it when missing."""
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info("Bucket '%s' created successfully", self.bucket)
            else:
                logger.info("Bucket '%s' already exists", self.bucket)
        except S3Error as e:
            logger.error("MinIO error: %s", e)
            raise RuntimeError(f"Failed to initialize MinIO bucket: {e}") from e

    async def put(self, content: BinaryIO, logical_name: str, content_type: str) -> tuple[str, str]:
        storage_key = f"{KEY_PREFIX}/{generate_storage_key(logical_name)}"
        try:
            await run_in_threadpool(
                self.client.put_object,
                self.bucket,
                storage_key,
                content,
                length=-1,
                part_size=PART_SIZE,
                content_type=content_type or "application/octet-stream",
            )
        except S3Error as e:
            raise BlobStorageError(f"Failed to upload {storage_key}: {e}") from e
        except (HTTPError, OSError) as e:
            raise BlobStorageError(f"Failed to upload {storage_key}: {e}") from e
        return storage_key, self.resolve_url(storage_key)

    async def delete(self, storage_key: str) -> None:
        try:
            await run_in_threadpool(self.client.remove_object, self.bucket, storage_key)
        except S3Error as e:
            if e.code in _MISSING_CODES:
                raise BlobNotFound(storage_key) from e
            raise BlobStorageError(f"Failed to delete {storage_key}: {e}") from e
        except (HTTPError, OSError) as e:
            raise BlobStorageError(f"Failed to delete {storage_key}: {e}") from e

    def resolve_url(self, storage_key: str) -> str:
        return f"{self.public_url}/{self.bucket}/{storage_key}"

    async def ping(self) -> None:
        try:
            await run_in_threadpool(self.client.bucket_exists, self.bucket)
        except (S3Error, HTTPError, OSError) as e:
            raise BlobStorageError(f"MinIO unavailable: {e}") from e
