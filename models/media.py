from typing import Optional

from pydantic import BaseModel


class UploadRequest(BaseModel):
    userId: str
    imageBase64: Optional[str] = None
    videoBase64: Optional[str] = None
    folder: Optional[str] = None


class MediaAsset(BaseModel):
    url: str
    publicId: str
    resourceType: str
    width: Optional[int] = None
    height: Optional[int] = None
    format: str
    bytes: int
