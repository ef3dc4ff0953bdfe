"""Public access to stored blog image assets."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import FileResponse

from src.media.service import resolve_media_file


router = APIRouter(prefix="/media", tags=["media"])


@router.get("/public/{org_id}/{filename}")
def public_asset(org_id: str, filename: str) -> FileResponse:
    file_path = resolve_media_file(org_id, filename)
    if file_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="media_file_not_found")
    return FileResponse(file_path, filename=file_path.name)
