"""Error taxonomy shared by the storage, cache and lifecycle layers."""


class FileVaultError(Exception):
    """Base class for every error raised by the file lifecycle core."""

    status_code = 500
    detail = "Internal Server Error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.detail)


class NotFoundError(FileVaultError):
    status_code = 404
    detail = "Not found"


class FileNotFound(NotFoundError):
    detail = "File not found"


class ShareLinkNotFound(NotFoundError):
    """
    Raised for an unknown token, an expired token and a token whose file is
    gone. The three cases carry the same message on purpose.
    """

    detail = "File not found or share expired"


class ForbiddenError(FileVaultError):
    status_code = 403
    detail = "Forbidden"


class InvalidInputError(FileVaultError):
    status_code = 400
    detail = "Invalid input"


class InvalidDuration(InvalidInputError):
    detail = "Invalid duration"


class UpstreamError(FileVaultError):
    """The blob store or the metadata store failed or timed out."""

    status_code = 502
    detail = "Storage backend unavailable"


class RateLimitedError(FileVaultError):
    status_code = 429
    detail = "Rate limit exceeded"

    def __init__(self, retry_after: int, message: str | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class BlobStorageError(Exception):
    """A blob store operation failed."""


class BlobNotFound(BlobStorageError):
    """The storage key does not exist in the blob store."""


class CacheError(Exception):
    """A cache backend operation failed. Never surfaced to callers of the facade."""
