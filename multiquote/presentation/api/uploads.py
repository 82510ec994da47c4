from typing import Optional

from fastapi import UploadFile

from ...application.services.user_admin_service import UploadedImage


async def read_upload(upload: Optional[UploadFile]) -> Optional[UploadedImage]:
    """Turn an optional multipart file into an in-memory image; empty parts count as absent."""
    if upload is None or not upload.filename:
        return None
    try:
        data = await upload.read()
    finally:
        await upload.close()
    return UploadedImage(data=data, content_type=upload.content_type, filename=upload.filename)
