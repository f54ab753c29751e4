import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile

from app.models.schemas import FieldViolation
from app.services.exceptions import RequestValidationFailed

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class FileStorage:
    """Stages uploaded documents on local disk for the duration of one request"""

    def __init__(self, upload_dir: str = "uploads", max_file_size: int = 20 * 1024 * 1024):
        self.upload_dir = Path(upload_dir)
        self.max_file_size = max_file_size

    def ensure_upload_dir(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def unique_path(self, original_name: Optional[str]) -> Path:
        """`{timestamp_ms}-{uuid8}{ext}` inside the upload directory"""
        suffix = Path(original_name or "").suffix.lower() or ".pdf"
        return self.upload_dir / f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}{suffix}"

    async def _write(self, file: UploadFile, path: Path) -> int:
        written = 0
        with path.open("wb") as out:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_file_size:
                    raise RequestValidationFailed(
                        "Uploaded file validation failed",
                        details=[FieldViolation(
                            field="document",
                            message=f"File exceeds {self.max_file_size // (1024 * 1024)}MB limit",
                        ).model_dump()],
                    )
                out.write(chunk)
        return written

    def delete(self, path: Path, request_id: Optional[str] = None) -> bool:
        """Best-effort removal; failures are logged, never raised"""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[{request_id}] Failed to cleanup uploaded file {path}: {e}")
            return False
        logger.info(f"[{request_id}] Uploaded file cleaned up: {path}")
        return True

    @asynccontextmanager
    async def stage_upload(self, file: UploadFile, request_id: Optional[str] = None) -> AsyncIterator[Path]:
        """Write `file` to a unique path, yield it, and delete it afterwards.

        Deletion happens whether the body of the ``async with`` block
        succeeds or raises.
        """
        self.ensure_upload_dir()
        path = self.unique_path(file.filename)
        try:
            size = await self._write(file, path)
            logger.info(f"[{request_id}] Staged upload {file.filename!r} ({size} bytes) at {path}")
            yield path
        finally:
            self.delete(path, request_id)
