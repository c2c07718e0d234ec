"""Tests for the local and MinIO blob stores."""

import io
import re
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from filevault.core.exceptions import BlobNotFound, BlobStorageError
from filevault.storage.base import generate_storage_key
from filevault.storage.minio_store import MinioBlobStore

from conftest import stored_blobs

KEY_PATTERN = re.compile(r"^\d{4}/\d{2}/\d{2}/[0-9a-f\-]{36}(\.[a-z0-9]+)?$")


class TestStorageKeys:

    def test_key_is_partitioned_by_date(self):
        key = generate_storage_key("Report.PDF", now=datetime(2026, 3, 7, 23, 59))
        assert key.startswith("2026/03/07/")
        assert key.endswith(".pdf")
        assert KEY_PATTERN.match(key)

    def test_key_without_extension(self):
        key = generate_storage_key("Makefile", now=datetime(2026, 3, 7))
        assert KEY_PATTERN.match(key)
        assert "." not in key.rsplit("/", 1)[1]

    def test_keys_are_never_reused(self):
        keys = {generate_storage_key("a.txt") for _ in range(100)}
        assert len(keys) == 100


class TestLocalBlobStore:

    async def test_put_writes_into_date_partition(self, storage, blob_root):
        key, url = await storage.put(io.BytesIO(b"payload"), "notes.txt", "text/plain")

        assert KEY_PATTERN.match(key)
        assert url == f"http://files.test/storage/{key}"
        assert (blob_root / key).read_bytes() == b"payload"

    async def test_same_name_gets_distinct_keys(self, storage):
        first, _ = await storage.put(io.BytesIO(b"1"), "same.txt", "text/plain")
        second, _ = await storage.put(io.BytesIO(b"2"), "same.txt", "text/plain")
        assert first != second

    async def test_delete_then_delete_again(self, storage, blob_root):
        key, _ = await storage.put(io.BytesIO(b"x"), "x.bin", "application/octet-stream")

        await storage.delete(key)
        assert stored_blobs(blob_root) == []

        with pytest.raises(BlobNotFound):
            await storage.delete(key)

    async def test_key_outside_root_is_rejected(self, storage):
        with pytest.raises(BlobStorageError):
            await storage.delete("../../etc/passwd")

    def test_resolve_url(self, storage):
        assert storage.resolve_url("2026/01/01/abc.txt") == "http://files.test/storage/2026/01/01/abc.txt"


class TestMinioBlobStore:

    @pytest.fixture
    def client(self):
        return MagicMock()

    @pytest.fixture
    def store(self, client):
        return MinioBlobStore(client, "filevault", "http://minio.test/")

    def test_ensure_bucket_creates_missing_bucket(self, store, client):
        client.bucket_exists.return_value = False
        store.ensure_bucket()
        client.make_bucket.assert_called_once_with("filevault")

    def test_ensure_bucket_keeps_existing_bucket(self, store, client):
        client.bucket_exists.return_value = True
        store.ensure_bucket()
        client.make_bucket.assert_not_called()

    async def test_put_uploads_under_prefix(self, store, client):
        content = io.BytesIO(b"data")
        key, url = await store.put(content, "photo.JPG", "image/jpeg")

        assert key.startswith("uploads/")
        assert KEY_PATTERN.match(key[len("uploads/"):])
        assert key.endswith(".jpg")
        assert url == f"http://minio.test/filevault/{key}"

        args, kwargs = client.put_object.call_args
        assert args[:3] == ("filevault", key, content)
        assert kwargs["content_type"] == "image/jpeg"
        assert kwargs["length"] == -1

    async def test_put_failure_is_storage_error(self, store, client):
        client.put_object.side_effect = ConnectionError("refused")
        with pytest.raises(BlobStorageError):
            await store.put(io.BytesIO(b"data"), "a.txt", "text/plain")

    async def test_delete_removes_object(self, store, client):
        await store.delete("uploads/2026/01/01/abc.txt")
        client.remove_object.assert_called_once_with("filevault", "uploads/2026/01/01/abc.txt")

    async def test_delete_failure_is_storage_error(self, store, client):
        client.remove_object.side_effect = ConnectionError("refused")
        with pytest.raises(BlobStorageError):
            await store.delete("uploads/2026/01/01/abc.txt")
