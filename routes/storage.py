from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from dependencies import CurrentUser, Media
from models.media import UploadRequest
from services.errors import Unauthorized

router = APIRouter()


@router.post("/upload")
def upload_media(request: UploadRequest, media: Media, current_user: CurrentUser) -> Dict[str, Any]:
    """
    Upload a base64 image or video

    Args:
        request: userId, folder and exactly one of imageBase64 / videoBase64
        media: Media store
        current_user: Must match request.userId
    """
    if request.userId != current_user.user_id:
        raise Unauthorized("You can only upload files for your own account")

    file_data = request.videoBase64 or request.imageBase64
    if not file_data:
        raise HTTPException(status_code=400, detail="File data (imageBase64 or videoBase64) is required")

    resource_type = "video" if request.videoBase64 else "image"
    folder = request.folder or ("videos" if resource_type == "video" else "posts")
    asset = media.upload(file_data, current_user.user_id, folder, resource_type)
    return {"success": True, "data": {**asset.model_dump(), "type": resource_type,
                                      "message": "File uploaded successfully"}}


@router.get("/info/{public_id:path}")
def media_info(public_id: str, media: Media, current_user: CurrentUser) -> Dict[str, Any]:
    return {"success": True, "data": media.info(public_id)}


@router.delete("/{public_id:path}")
def delete_media(public_id: str, media: Media, current_user: CurrentUser) -> Dict[str, Any]:
    """Delete a file the signed-in user uploaded"""
    info = media.info(public_id)
    if info.get("owner") != current_user.user_id:
        raise Unauthorized("You can only delete your own files")
    result = media.delete(public_id)
    return {"success": True, "data": result, "message": "File deleted successfully"}
