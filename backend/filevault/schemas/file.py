from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class FileRecord(BaseModel):
    """Metadata of a stored file, as served from the metadata store or the cache."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: int
    name: str
    size: int
    content_type: str
    storage_key: str
    public_url: str
    is_public: bool = False
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


FileRecordList = TypeAdapter(list[FileRecord])


class FileInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    size: int
    content_type: str
    public_url: str
    is_public: bool
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class FileListResponse(BaseModel):
    files: list[FileInfo]
    limit: int
    offset: int


class FileUpdate(BaseModel):
    """
    Partial update of a file. A field left out of the payload is not touched;
    ``model_fields_set`` tells which fields were provided.
    """

    name: str | None = Field(default=None, min_length=1, max_length=255)
    is_public: bool | None = None
    expires_in: str | None = None

    def provided(self, field: str) -> bool:
        return field in self.model_fields_set and getattr(self, field) is not None


class FileSearch(BaseModel):
    query: str | None = None
    file_type: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    limit: int = 20
    offset: int = 0


class ShareLinkRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    file_id: str
    token: str
    expires_at: datetime | None = None
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class ShareRequest(BaseModel):
    expires_in: str | None = None


class ShareResponse(BaseModel):
    share_url: str
    token: str
    expires_at: datetime | None = None
