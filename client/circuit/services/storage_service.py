"""Uploads of avatars and beta media, with client-side type and size limits."""

import logging
import re
import time
from typing import FrozenSet

from circuit.backend import BackendClient
from circuit.exceptions import ValidationError
from circuit.schemas import BetaType, FileUpload


logger = logging.getLogger(__name__)

BETA_STORAGE_BUCKET = "route-beta"
AVATAR_STORAGE_BUCKET = "avatars"

MB = 1024 * 1024
AVATAR_MAX_BYTES = 5 * MB
BETA_MAX_BYTES = 50 * MB

AVATAR_TYPES = frozenset({"image/jpeg", "image/png", "image/gif"})
VIDEO_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm"})
IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})


def validate_file(upload: FileUpload, allowed_types: FrozenSet[str], max_bytes: int, kind: str):
    """Raise ValidationError unless the file has an allowed type and size."""
    if upload.content_type not in allowed_types:
        raise ValidationError(f"Invalid file type. Please select {kind}.", field="file")
    if upload.size > max_bytes:
        raise ValidationError(f"File size exceeds {max_bytes // MB}MB limit.", field="file")


def sanitize_filename(filename: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.]", "_", filename)


def beta_media_rules(beta_type: BetaType):
    """(allowed types, max bytes, description) for a media beta type."""
    if beta_type == BetaType.VIDEO:
        return VIDEO_TYPES, BETA_MAX_BYTES, "a video file"
    if beta_type == BetaType.DRAWING:
        return IMAGE_TYPES, BETA_MAX_BYTES, "an image file"
    raise ValueError(f"{beta_type.value} beta has no media")


class StorageService:
    """Service for object storage buckets."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    async def upload_avatar(self, user_id: str, upload: FileUpload) -> str:
        """Replace the user's avatar and return its public URL."""
        validate_file(upload, AVATAR_TYPES, AVATAR_MAX_BYTES, "a JPEG, PNG or GIF image")
        path = f"{user_id}/avatar.{upload.extension or 'png'}"
        await self.backend.upload(
            AVATAR_STORAGE_BUCKET, path, upload.content, upload.content_type, upsert=True
        )
        logger.info("Uploaded avatar for user %s", user_id)
        return self.backend.get_public_url(AVATAR_STORAGE_BUCKET, path)

    async def upload_beta_media(self, user_id: str, route_id: str, beta_type: BetaType, upload: FileUpload) -> str:
        """Store a beta video or drawing and return its public URL."""
        allowed, max_bytes, kind = beta_media_rules(beta_type)
        validate_file(upload, allowed, max_bytes, kind)
        timestamp = int(time.time() * 1000)
        path = f"{user_id}/{route_id}/{timestamp}_{sanitize_filename(upload.filename)}"
        await self.backend.upload(BETA_STORAGE_BUCKET, path, upload.content, upload.content_type)
        logger.info("Uploaded %s beta media for route %s", beta_type.value, route_id)
        return self.backend.get_public_url(BETA_STORAGE_BUCKET, path)
