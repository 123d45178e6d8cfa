"""Upload endpoints — /api/upload and /api/upload/background."""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from hml.auth.dependencies import get_current_user
from hml.db.models import User
from hml.uploads.storage import background_rule, profile_image_rule, save_upload

router = APIRouter(prefix="/api/upload", tags=["Uploads"])


@router.post("")
async def upload_image(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
) -> dict[str, object]:
    """Profile or link image (JPEG, PNG, GIF, WebP)."""
    path = await save_upload(file, profile_image_rule(), user.id)
    return {"success": True, "path": path}


@router.post("/background")
async def upload_background(
    file: UploadFile = File(...),
    type: str = Form(...),  # noqa: A002
    user: User = Depends(get_current_user),
) -> dict[str, object]:
    """Background image (``type=image``) or video (``type=video``)."""
    path = await save_upload(file, background_rule(type), user.id)
    return {"success": True, "path": path}
