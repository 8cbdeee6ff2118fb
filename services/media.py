import base64
import binascii
import io
import logging
import re
import uuid
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.exceptions import ClientError
from PIL import Image, UnidentifiedImageError

from models.media import MediaAsset
from services.errors import ArtConnectError, NotFound, ValidationError
from utils.timestamps import epoch_millis

logger = logging.getLogger(__name__)

DATA_URL = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,", re.IGNORECASE)
FOLDER = re.compile(r"^[A-Za-z0-9_-]+(/[A-Za-z0-9_-]+)*$")

IMAGE_CONTENT_TYPES = {"jpeg": "image/jpeg", "png": "image/png", "gif": "image/gif", "webp": "image/webp"}


def decode_payload(payload: str) -> Tuple[bytes, Optional[str]]:
    """
    Decode raw or data-URL base64.

    Returns:
        The decoded bytes and the MIME type when the payload was a data URL
    """
    mime = None
    match = DATA_URL.match(payload)
    if match:
        mime = match.group("mime").lower()
        payload = payload[match.end():]
    try:
        return base64.b64decode(payload, validate=True), mime
    except (binascii.Error, ValueError):
        raise ValidationError("File data is not valid base64")


class MediaStore:
    def __init__(self, bucket_name: str, client: boto3.client, region: str = "us-east-2",
                 public_base_url: Optional[str] = None, max_size_mb: int = 25):
        """
        Initialize the media store with its bucket and S3 client
        """
        self.bucket_name = bucket_name
        self.s3 = client
        self.region = region
        self.public_base_url = (public_base_url or
                                f"https://{bucket_name}.s3.{region}.amazonaws.com").rstrip("/")
        self.max_size_mb = max_size_mb

    def url_for(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def key_from(self, public_id_or_url: str) -> str:
        """Accept either a publicId or a URL this store handed out"""
        if public_id_or_url.startswith(self.public_base_url + "/"):
            return public_id_or_url[len(self.public_base_url) + 1:]
        return public_id_or_url.lstrip("/")

    def upload(self, payload: str, user_id: str, folder: str = "posts",
               resource_type: str = "image") -> MediaAsset:
        """
        Upload a base64 image or video under {folder}/{user_id}_{ms}_{random}.{ext}

        Args:
            payload: Base64 data, optionally as a data URL
            user_id: Owner of the file, also stored as object metadata
            folder: Target folder, e.g. posts, profile or videos
            resource_type: "image" or "video"

        Returns:
            The stored asset's URL, publicId, dimensions, format and size

        Raises:
            ValidationError: If the payload is empty, too large or not a readable image
        """
        if not user_id:
            raise ValidationError("userId is required")
        if not FOLDER.match(folder):
            raise ValidationError("Invalid folder name")

        data, mime = decode_payload(payload)
        if not data:
            raise ValidationError("File data is empty")
        if len(data) > self.max_size_mb * 1024 * 1024:
            raise ValidationError(f"File size exceeds {self.max_size_mb}MB limit")

        width = height = None
        if resource_type == "image":
            try:
                with Image.open(io.BytesIO(data)) as image:
                    width, height = image.size
                    file_format = (image.format or "jpeg").lower()
            except UnidentifiedImageError:
                raise ValidationError("File data is not a supported image")
            content_type = IMAGE_CONTENT_TYPES.get(file_format, mime or "application/octet-stream")
        else:
            content_type = mime if mime and mime.startswith("video/") else "video/mp4"
            file_format = content_type.split("/", 1)[1]

        key = f"{folder}/{user_id}_{epoch_millis()}_{uuid.uuid4().hex[:7]}.{file_format}"
        metadata = {"user_id": user_id, "resource_type": resource_type}
        if width is not None:
            metadata.update({"width": str(width), "height": str(height)})

        try:
            self.s3.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata,
            )
        except ClientError as e:
            logger.error("S3 upload error: %s", e)
            raise ArtConnectError("Failed to upload media file")

        logger.info("Uploaded %s %s (%d bytes) for %s", resource_type, key, len(data), user_id)
        return MediaAsset(
            url=self.url_for(key),
            publicId=key,
            resourceType=resource_type,
            width=width,
            height=height,
            format=file_format,
            bytes=len(data),
        )

    def info(self, public_id_or_url: str) -> Dict[str, Any]:
        key = self.key_from(public_id_or_url)
        try:
            head = self.s3.head_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                raise NotFound("Media", key)
            logger.error("S3 metadata error: %s", e)
            raise ArtConnectError("Failed to get file metadata")

        metadata = head.get("Metadata", {})
        width = metadata.get("width")
        height = metadata.get("height")
        return {
            "publicId": key,
            "url": self.url_for(key),
            "resourceType": metadata.get("resource_type", "image"),
            "format": key.rsplit(".", 1)[-1] if "." in key else None,
            "contentType": head.get("ContentType"),
            "bytes": head.get("ContentLength"),
            "width": int(width) if width else None,
            "height": int(height) if height else None,
            "owner": metadata.get("user_id"),
            "lastModified": head["LastModified"].isoformat() if head.get("LastModified") else None,
        }

    def delete(self, public_id_or_url: str) -> Dict[str, Any]:
        key = self.key_from(public_id_or_url)
        # S3 deletes are idempotent, so check existence to report a missing file
        self.info(key)
        try:
            self.s3.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            logger.error("S3 delete error: %s", e)
            raise ArtConnectError("Failed to delete file")
        return {"publicId": key, "result": "ok"}
