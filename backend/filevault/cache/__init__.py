from .base import CacheBackend
from .file_cache import FileCache
from .memory import MemoryCache
from .redis_cache import RedisCache

__all__ = ["CacheBackend", "FileCache", "MemoryCache", "RedisCache"]
