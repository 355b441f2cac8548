"""
Media storage for incident attachments.

The lifecycle engine treats media storage as "store bytes, get back a URL".
The production implementation uploads through the Cloudinary SDK; size and
type limits are enforced before this point and again by Cloudinary itself.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog

from core.config import settings
from core.exceptions import MediaUploadError

logger = structlog.get_logger(__name__)

ALLOWED_MEDIA_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "video/mp4",
    "video/webm",
}

ALLOWED_MEDIA_FORMATS = ["jpg", "jpeg", "png", "gif", "mp4", "webm", "webp"]


@dataclass
class StoredMedia:
    """Where an uploaded file ended up."""

    url: str
    id: str


class MediaStore(Protocol):
    async def store(self, data: bytes, folder: str) -> StoredMedia: ...


class CloudinaryMediaStore:
    """
    Upload media to Cloudinary.

    Uses the ``auto`` resource type so images and videos share one endpoint,
    and asks Cloudinary to pick quality and delivery format.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        root_folder: str = "sentinellink",
        max_bytes: int = 10 * 1024 * 1024,
        timeout: float = 30.0,
    ):
        self.cloud_name = cloud_name
        self.root_folder = root_folder
        self.max_bytes = max_bytes
        self.timeout = timeout
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload_options(self, folder: str) -> dict[str, Any]:
        return {
            "folder": f"{self.root_folder}/{folder}",
            "resource_type": "auto",
            "allowed_formats": ALLOWED_MEDIA_FORMATS,
            "max_bytes": self.max_bytes,
            "transformation": [{"quality": "auto:good"}, {"fetch_format": "auto"}],
            "timeout": self.timeout,
        }

    async def store(self, data: bytes, folder: str) -> StoredMedia:
        """
        Upload bytes and return the secure URL.

        The SDK is blocking, so the upload runs in a worker thread.

        Raises:
            MediaUploadError: If Cloudinary rejects the upload or returns no URL.
        """
        try:
            result = await asyncio.to_thread(cloudinary.uploader.upload, data, **self.upload_options(folder))
        except cloudinary.exceptions.Error as e:
            logger.error("media_upload_failed", error=str(e), folder=folder)
            raise MediaUploadError(f"Cloudinary upload failed: {e}") from e

        secure_url = (result or {}).get("secure_url")
        if not secure_url:
            logger.error("media_upload_empty", folder=folder)
            raise MediaUploadError("Cloudinary upload returned no result")

        logger.info("media_uploaded", public_id=result.get("public_id"), bytes=len(data))
        return StoredMedia(url=secure_url, id=result.get("public_id", ""))


def get_media_store() -> Optional[MediaStore]:
    """Build the configured media store, or None if media storage is not configured."""
    if not (settings.CLOUDINARY_CLOUD_NAME and settings.CLOUDINARY_API_KEY and settings.CLOUDINARY_API_SECRET):
        return None

    return CloudinaryMediaStore(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        root_folder=settings.CLOUDINARY_FOLDER,
        max_bytes=settings.MEDIA_MAX_BYTES,
        timeout=settings.MEDIA_UPLOAD_TIMEOUT_SECONDS,
    )
