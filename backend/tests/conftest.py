"""Shared pytest fixtures for all tests."""

import io

import pytest
import pytest_asyncio

from filevault.cache.file_cache import FileCache
from filevault.cache.memory import MemoryCache
from filevault.core.database import create_engine, create_session_factory, init_models
from filevault.repositories.file_repository import FileRepository
from filevault.services.file_service import FileService
from filevault.storage.local import LocalBlobStore


class FakeClock:
    """Manually advanced clock for TTL and rate-limit windows."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'filevault.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(engine):
    return FileRepository(create_session_factory(engine))


@pytest.fixture
def blob_root(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture
def storage(blob_root):
    return LocalBlobStore(str(blob_root), "http://files.test/storage")


@pytest.fixture
def cache_backend(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def file_cache(cache_backend):
    return FileCache(cache_backend, ttl=300)


@pytest.fixture
def file_service(repository, storage, file_cache):
    return FileService(
        repository,
        storage,
        file_cache,
        base_share_url="http://share.test",
        io_timeout=5,
        default_page_size=20,
        max_page_size=100,
        max_file_size=1024 * 1024,
    )


@pytest.fixture
def upload(file_service):
    """
    Upload helper bound to the service fixture.

    Returns:
        Coroutine function taking the usual upload arguments with defaults.
    """

    async def _upload(user_id=1, name="report.pdf", data=b"hello world", content_type="application/pdf",
                      expires_in=None):
        return await file_service.upload_file(
            user_id, name, len(data), content_type, io.BytesIO(data), expires_in=expires_in
        )

    return _upload


def stored_blobs(root) -> list:
    """Relative paths of every blob currently on disk."""
    if not root.exists():
        return []
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())
