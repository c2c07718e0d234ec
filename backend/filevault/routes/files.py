from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response, UploadFile, status

from filevault.dependencies import enforce_rate_limit, get_current_user_id, get_file_service
from filevault.schemas.file import FileInfo, FileListResponse, FileSearch, FileUpdate
from filevault.services.file_service import FileService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Files"], dependencies=[Depends(enforce_rate_limit)])


def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    file.file.seek(0, 2)
    size = file.file.tell()
    file.file.seek(0)
    return size


@router.post("/upload", response_model=FileInfo, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: UploadFile,
    expires_in: str | None = Query(None, description="Relative expiry such as '24h' or '7d'"),
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    return await service.upload_file(
        user_id=user_id,
        name=file.filename or "",
        size=_upload_size(file),
        content_type=file.content_type,
        content=file.file,
        expires_in=expires_in,
    )


@router.get("/files", response_model=FileListResponse)
async def list_files(
    limit: int | None = Query(None, ge=1, description="Page size, up to the configured maximum"),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    files = await service.list_user_files(user_id, limit=limit, offset=offset)
    return FileListResponse(
        files=[FileInfo.model_validate(f) for f in files],
        limit=limit or service.default_page_size,
        offset=offset,
    )


@router.get("/files/search", response_model=FileListResponse)
async def search_files(
    q: str | None = Query(None, description="Search by file name"),
    type: str | None = Query(None, description="Filter by content type, e.g. 'pdf'"),
    start_date: str | None = Query(None, description="created_at >= YYYY-MM-DD"),
    end_date: str | None = Query(None, description="created_at <= YYYY-MM-DD"),
    limit: int | None = Query(None, ge=1, description="Page size, up to the configured maximum"),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    limit = limit or service.default_page_size
    search = FileSearch(
        query=q, file_type=type, start_date=start_date, end_date=end_date, limit=limit, offset=offset
    )
    files = await service.search_files(user_id, search)
    return FileListResponse(files=[FileInfo.model_validate(f) for f in files], limit=limit, offset=offset)


@router.get("/files/{file_id}", response_model=FileInfo)
async def get_file(
    file_id: str,
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    return await service.get_file(file_id, user_id=user_id)


@router.patch("/files/{file_id}", response_model=FileInfo)
async def update_file(
    file_id: str,
    changes: FileUpdate,
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    return await service.update_file(file_id, user_id, changes)


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    await service.delete_file(file_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
