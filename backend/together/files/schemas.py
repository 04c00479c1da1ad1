"""Pydantic schemas for uploaded images.

Images are stored in owner-scoped directories (uploads/{owner_id}/) with
UUID-based filenames to prevent collisions. Metadata is tracked in DuckDB.
"""
import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ImageMetadata(BaseModel):
    """Metadata for a stored image.

    ``owner_id`` is the user or conversation the image belongs to and names
    the directory it is stored in.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique file ID")
    owner_id: str = Field(..., description="User or conversation the image belongs to")
    uploaded_by: str = Field(..., description="User ID who uploaded the image")
    original_filename: str = Field(..., description="Original filename")
    stored_filename: str = Field(..., description="Filename on disk (UUID-based)")
    mime_type: str = Field(..., description="MIME type of the image")
    size_bytes: int = Field(..., description="File size in bytes")
    uploaded_at: datetime = Field(default_factory=datetime.utcnow, description="Upload time")


def is_image(mime_type: str) -> bool:
    """Only ``image/*`` MIME types are accepted.

    Examples:
        >>> is_image("image/png")
        True
        >>> is_image("application/pdf")
        False
    """
    return (mime_type or "").lower().startswith("image/")
