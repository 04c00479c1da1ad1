"""FastAPI router serving stored images."""
import logging

from fastapi import APIRouter, Request, UploadFile
from fastapi.responses import FileResponse

from together.errors import NotFound

from .schemas import ImageMetadata
from .service import ImageStorageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


def get_download_url(request: Request, file_id: str) -> str:
    """Generate the public URL of a stored image."""
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/files/{file_id}"


async def store_upload(owner_id: str, uploaded_by: str, upload: UploadFile) -> ImageMetadata:
    """Persist a multipart upload through the image storage service."""
    content = await upload.read()
    return ImageStorageService.get_instance().save_image(
        owner_id=owner_id,
        uploaded_by=uploaded_by,
        filename=upload.filename or "unnamed",
        content=content,
        mime_type=upload.content_type or "application/octet-stream",
    )


@router.get("/{file_id}")
async def download_image(file_id: str):
    """Serve an image by ID.

    Raises:
        NotFound: If the image is unknown or missing on disk
    """
    service = ImageStorageService.get_instance()

    metadata = service.get_image(file_id)
    if not metadata:
        raise NotFound("File not found")

    file_path = service.get_image_path(file_id)
    if not file_path:
        raise NotFound("File not found on disk")

    return FileResponse(
        path=file_path,
        filename=metadata.original_filename,
        media_type=metadata.mime_type,
    )
