"""Image storage service.

Handles image storage on disk and metadata tracking in DuckDB.
Images are stored in: uploads/{owner_id}/{uuid}.{ext}
"""
import logging
import uuid
from pathlib import Path
from typing import List, Optional

import duckdb

from together.config import get_config
from together.errors import BadRequest, PayloadTooLarge

from .schemas import ImageMetadata, is_image

logger = logging.getLogger(__name__)


class ImageStorageService:
    """Service for storing uploaded profile and group images."""

    _instance: Optional["ImageStorageService"] = None

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        db_path: Optional[str] = None,
        max_bytes: Optional[int] = None,
    ):
        storage = get_config().storage
        self._upload_dir = upload_dir or storage.upload_dir
        self._db_path = db_path or storage.db_path(storage.files_db)
        self._max_bytes = max_bytes or storage.max_image_bytes

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._ensure_upload_dir()
        self._initialize_db()

    @classmethod
    def get_instance(
        cls, upload_dir: Optional[str] = None, db_path: Optional[str] = None
    ) -> "ImageStorageService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(upload_dir, db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        if cls._instance and cls._instance._connection:
            cls._instance._connection.close()
        cls._instance = None

    def _ensure_upload_dir(self) -> None:
        Path(self._upload_dir).mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS image_metadata (
                id VARCHAR PRIMARY KEY,
                owner_id VARCHAR NOT NULL,
                uploaded_by VARCHAR NOT NULL,
                original_filename VARCHAR NOT NULL,
                stored_filename VARCHAR NOT NULL,
                mime_type VARCHAR NOT NULL,
                size_bytes BIGINT NOT NULL,
                uploaded_at TIMESTAMP NOT NULL
            )
        """)

    def _get_owner_dir(self, owner_id: str) -> Path:
        return Path(self._upload_dir) / owner_id

    def save_image(
        self,
        owner_id: str,
        uploaded_by: str,
        filename: str,
        content: bytes,
        mime_type: str,
    ) -> ImageMetadata:
        """Save an uploaded image to disk and record metadata.

        Args:
            owner_id: User or conversation the image belongs to
            uploaded_by: User ID who uploaded the image
            filename: Original filename
            content: Image content as bytes
            mime_type: MIME type reported by the client

        Returns:
            ImageMetadata for the stored image

        Raises:
            BadRequest: If the upload is not an image
            PayloadTooLarge: If the image exceeds the size limit
        """
        if not is_image(mime_type):
            raise BadRequest("Only image files are allowed")

        size_bytes = len(content)
        if size_bytes > self._max_bytes:
            raise PayloadTooLarge(
                f"File size ({size_bytes} bytes) exceeds limit ({self._max_bytes} bytes)"
            )

        file_id = str(uuid.uuid4())
        ext = Path(filename).suffix.lower() or ""
        stored_filename = f"{file_id}{ext}"

        owner_dir = self._get_owner_dir(owner_id)
        owner_dir.mkdir(parents=True, exist_ok=True)
        file_path = owner_dir / stored_filename
        file_path.write_bytes(content)

        logger.info(f"Saved image: {file_path} ({size_bytes} bytes)")

        metadata = ImageMetadata(
            id=file_id,
            owner_id=owner_id,
            uploaded_by=uploaded_by,
            original_filename=filename,
            stored_filename=stored_filename,
            mime_type=mime_type,
            size_bytes=size_bytes,
        )
        self._get_connection().execute(
            """
            INSERT INTO image_metadata
            (id, owner_id, uploaded_by, original_filename, stored_filename,
             mime_type, size_bytes, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                metadata.id,
                metadata.owner_id,
                metadata.uploaded_by,
                metadata.original_filename,
                metadata.stored_filename,
                metadata.mime_type,
                metadata.size_bytes,
                metadata.uploaded_at,
            ],
        )
        return metadata

    def get_image(self, file_id: str) -> Optional[ImageMetadata]:
        result = self._get_connection().execute(
            """
            SELECT id, owner_id, uploaded_by, original_filename, stored_filename,
                   mime_type, size_bytes, uploaded_at
            FROM image_metadata
            WHERE id = ?
            """,
            [file_id],
        ).fetchone()
        if not result:
            return None
        return self._row_to_metadata(result)

    def get_image_path(self, file_id: str) -> Optional[Path]:
        """Get the path on disk for a file ID, if the file still exists."""
        metadata = self.get_image(file_id)
        if not metadata:
            return None
        file_path = self._get_owner_dir(metadata.owner_id) / metadata.stored_filename
        if not file_path.exists():
            return None
        return file_path

    def get_owner_images(self, owner_id: str) -> List[ImageMetadata]:
        results = self._get_connection().execute(
            """
            SELECT id, owner_id, uploaded_by, original_filename, stored_filename,
                   mime_type, size_bytes, uploaded_at
            FROM image_metadata
            WHERE owner_id = ?
            ORDER BY uploaded_at ASC
            """,
            [owner_id],
        ).fetchall()
        return [self._row_to_metadata(r) for r in results]

    @staticmethod
    def _row_to_metadata(r) -> ImageMetadata:
        return ImageMetadata(
            id=r[0],
            owner_id=r[1],
            uploaded_by=r[2],
            original_filename=r[3],
            stored_filename=r[4],
            mime_type=r[5],
            size_bytes=r[6],
            uploaded_at=r[7],
        )
