from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from filevault.dependencies import enforce_rate_limit, get_current_user_id, get_file_service
from filevault.schemas.file import ShareRequest, ShareResponse
from filevault.services.file_service import FileService

router = APIRouter(tags=["Share Links"], dependencies=[Depends(enforce_rate_limit)])

public_router = APIRouter(tags=["Download"], dependencies=[Depends(enforce_rate_limit)])


@router.post("/files/{file_id}/share", response_model=ShareResponse)
async def create_share_link(
    file_id: str,
    body: ShareRequest | None = None,
    user_id: int = Depends(get_current_user_id),
    service: FileService = Depends(get_file_service),
):
    expires_in = body.expires_in if body else None
    return await service.share_file(file_id, user_id, expires_in)


@router.get("/share/{token}/meta")
async def get_share_meta(token: str, service: FileService = Depends(get_file_service)):
    file = await service.get_shared_file(token)
    return {
        "name": file.name,
        "size": file.size,
        "content_type": file.content_type,
    }


@public_router.get("/shared/{token}")
async def download_by_token(token: str, service: FileService = Depends(get_file_service)):
    file = await service.get_shared_file(token)
    return RedirectResponse(file.public_url, status_code=302, headers={"Cache-Control": "no-store"})
