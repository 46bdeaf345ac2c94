"""
File upload service.
Streams uploaded media into the upload directory so it can be queued by path.
"""

import uuid
import logging
import aiofiles
from pathlib import Path
from typing import Optional, Iterable

from config import settings
from utils.exceptions import ValidationError, ProcessingError

logger = logging.getLogger(__name__)


class FileService:
    """Service for handling file uploads."""

    def __init__(
        self,
        upload_dir: Optional[Path] = None,
        max_size_mb: Optional[int] = None,
        allowed_extensions: Optional[Iterable[str]] = None,
    ):
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_size_mb = max_size_mb or settings.max_upload_size_mb
        self.max_size = self.max_size_mb * 1024 * 1024  # Convert to bytes
        self.allowed_extensions = set(allowed_extensions or settings.allowed_extensions)

    def validate_file(self, filename: str, file_size: int) -> None:
        """
        Validate file extension and size.

        Raises:
            ValidationError: If extension not allowed or file too large
        """
        ext = Path(filename or "").suffix.lower()

        if ext not in self.allowed_extensions:
            raise ValidationError(
                f"File type '{ext}' not allowed. "
                f"Allowed types: {', '.join(sorted(self.allowed_extensions))}"
            )

        if file_size > self.max_size:
            raise ValidationError(f"File too large. Maximum size is {self.max_size_mb}MB")

    async def save_upload(
        self,
        file,
        filename: str,
        chunk_size: int = 1024 * 1024  # 1MB chunks
    ) -> Path:
        """
        Save an uploaded file to disk.

        Args:
            file: Object with an async `read(size)` (e.g. fastapi.UploadFile)
            filename: Original filename
            chunk_size: Size of chunks to read/write

        Returns:
            Path of the stored file
        """
        # Unique prefix prevents collisions between uploads of the same name
        file_id = str(uuid.uuid4())[:8]
        file_path = self.upload_dir / f"{file_id}_{self._sanitize_filename(filename)}"
        self.upload_dir.mkdir(parents=True, exist_ok=True)

        total_size = 0
        try:
            async with aiofiles.open(file_path, 'wb') as out_file:
                while chunk := await file.read(chunk_size):
                    total_size += len(chunk)
                    if total_size > self.max_size:
                        raise ValidationError(f"File too large. Maximum size is {self.max_size_mb}MB")
                    await out_file.write(chunk)
        except ValidationError:
            file_path.unlink(missing_ok=True)  # Delete partial file
            raise
        except OSError as e:
            file_path.unlink(missing_ok=True)
            logger.error(f"Failed to save upload: {e}")
            raise ProcessingError(f"Failed to save file: {str(e)}")

        logger.info(f"Saved upload: {file_path.name} ({total_size} bytes)")
        return file_path

    def _sanitize_filename(self, filename: str) -> str:
        """Remove unsafe characters from filename."""
        # Keep alphanumeric, dots, dashes, and underscores
        safe_chars = set('abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-_')
        return ''.join(c if c in safe_chars else '_' for c in Path(filename).name)

    def delete_file(self, file_path: Path) -> bool:
        """Delete a stored upload."""
        file_path = Path(file_path)
        if file_path.exists() and file_path.parent == self.upload_dir:
            file_path.unlink()
            logger.info(f"Deleted file: {file_path.name}")
            return True
        return False
