"""Attendance photo storage.

Photos arrive as base64 strings (optionally data URLs, as sent by browser
cameras). They are validated and downscaled with Pillow before being written,
so a corrupt payload fails here and no attendance record is written.
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union
from uuid import uuid4

from PIL import Image

from ..core.constants import PHOTO_FOLDER, PHOTO_JPEG_QUALITY, PHOTO_MAX_BYTES, PHOTO_MAX_SIZE

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)

PhotoPayload = Union[str, bytes]


class PhotoUploadError(Exception):
    """Raised when a photo cannot be decoded or persisted."""


@dataclass(frozen=True)
class StoredPhoto:
    url: str
    storage_id: str


class PhotoStore(Protocol):
    def store(self, payload: PhotoPayload) -> StoredPhoto:
        raise NotImplementedError


def decode_photo_payload(payload: PhotoPayload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    if not isinstance(payload, str):
        raise PhotoUploadError("Photo must be a base64-encoded string")

    data = _DATA_URL_PREFIX.sub("", payload.strip())
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PhotoUploadError("Photo is not valid base64 data") from exc
    if not raw:
        raise PhotoUploadError("Photo is empty")
    return raw


class LocalPhotoStore(PhotoStore):
    """Stores JPEGs under ``root_dir/<folder>/`` and serves them from ``base_url``."""

    def __init__(self, root_dir: str | Path, *, base_url: str = "/uploads", folder: str = PHOTO_FOLDER):
        self._root = Path(root_dir)
        self._base_url = base_url.rstrip("/")
        self._folder = folder

    def store(self, payload: PhotoPayload) -> StoredPhoto:
        raw = decode_photo_payload(payload)
        if len(raw) > PHOTO_MAX_BYTES:
            raise PhotoUploadError(f"Photo exceeds {PHOTO_MAX_BYTES // (1024 * 1024)} MB")
        storage_id = f"{self._folder}/{uuid4().hex}.jpg"
        path = self._root / storage_id

        try:
            with Image.open(io.BytesIO(raw)) as img:
                photo = img.convert("RGB")
            photo.thumbnail(PHOTO_MAX_SIZE)
            path.parent.mkdir(parents=True, exist_ok=True)
            photo.save(path, "JPEG", quality=PHOTO_JPEG_QUALITY)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise PhotoUploadError(f"Could not store photo: {exc}") from exc

        logger.info("Stored attendance photo %s (%sx%s)", storage_id, *photo.size)
        return StoredPhoto(url=f"{self._base_url}/{storage_id}", storage_id=storage_id)

    def resolve_path(self, url: str) -> Optional[Path]:
        """Local file behind a URL this store handed out, or None."""

        prefix = f"{self._base_url}/"
        if not url or not url.startswith(prefix):
            return None
        path = self._root / url[len(prefix):]
        return path if path.is_file() else None
