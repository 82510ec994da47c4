"""Storage for uploaded user and company images."""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

from ..domain.errors import ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class ObjectStorage:
    """Writes uploads below a media root and returns their public URL."""

    def __init__(self, root: Path, base_url: str) -> None:
        self._root = root
        self._base_url = base_url.rstrip("/")

    async def upload(self, data: bytes, folder: str, content_type: Optional[str]) -> str:
        extension = self.validate_image(data, content_type)
        folder_clean = folder.strip("/")
        filename = f"{uuid.uuid4().hex}{extension}"
        target = (self._root / folder_clean / filename).resolve()
        if self._root.resolve() not in target.parents:
            raise ValueError(f"Invalid upload folder: {folder}")
        await asyncio.to_thread(self._write, target, data)
        logger.info("Stored upload %s/%s (%s bytes)", folder_clean, filename, len(data))
        return f"{self._base_url}/{folder_clean}/{filename}"

    @staticmethod
    def validate_image(data: bytes, content_type: Optional[str]) -> str:
        extension = ALLOWED_IMAGE_TYPES.get((content_type or "").lower())
        if extension is None:
            raise ValidationFailed(["Only JPG and PNG files are allowed"])
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValidationFailed(["File too large. Max 5 MB allowed."])
        return extension

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
