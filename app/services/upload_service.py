import asyncio
import math
from typing import Optional, Protocol, Union
from uuid import UUID

from loguru import logger

from app.core.config import UploadSettings
from app.core.exceptions import UploadValidationError
from app.schemas.video import VideoCreate, VideoRecord
from app.services.file_storage import AsyncReadable, FileStorage
from app.storage.base import Storage

ALLOWED_MIME_TYPES = {
    "video/mp4": "MP4",
    "video/quicktime": "MOV",
    "video/x-msvideo": "AVI",
}


class IncomingFile(AsyncReadable, Protocol):
    filename: Optional[str]
    content_type: Optional[str]
    size: Optional[int]


def parse_duration_ms(value: Union[str, int, float, None]) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise UploadValidationError("Video duration is required")
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise UploadValidationError(f"Invalid video duration: {value}")
    if not math.isfinite(duration):
        raise UploadValidationError(f"Invalid video duration: {value}")
    return round(duration)


class UploadGate:
    """Validates a clip upload and persists the file and its record together."""

    def __init__(self, storage: Storage, files: FileStorage, settings: UploadSettings):
        self.storage = storage
        self.files = files
        self.settings = settings

    def check_type(self, content_type: Optional[str]) -> None:
        if content_type not in ALLOWED_MIME_TYPES:
            raise UploadValidationError("Only MP4, MOV, and AVI files are allowed")

    def check_size(self, size: Optional[int]) -> None:
        if size is not None and size > self.settings.max_upload_bytes:
            limit_mb = self.settings.max_upload_bytes // (1024 * 1024)
            raise UploadValidationError(f"File exceeds the {limit_mb}MB limit")

    def check_duration(self, duration_ms: int) -> None:
        if duration_ms <= 0:
            raise UploadValidationError("Video duration must be positive")
        if duration_ms > self.settings.max_duration_ms:
            seconds = self.settings.max_duration_ms / 1000
            raise UploadValidationError(f"Video must be {seconds:g} seconds or less")

    def check_category(self, skill_category: Optional[str]) -> str:
        if not skill_category or not skill_category.strip():
            raise UploadValidationError("Skill category is required")
        return skill_category.strip()

    async def accept(
        self,
        user_id: UUID,
        upload: Optional[IncomingFile],
        skill_category: Optional[str],
        description: Optional[str],
        duration: Union[str, int, float, None],
    ) -> VideoRecord:
        if upload is None or not upload.filename:
            raise UploadValidationError("No video file provided")

        self.check_type(upload.content_type)
        self.check_size(upload.size)
        duration_ms = parse_duration_ms(duration)
        self.check_duration(duration_ms)
        category = self.check_category(skill_category)

        filename = self.files.generate_filename(upload.filename)
        size = await self.files.save(upload, filename, max_bytes=self.settings.max_upload_bytes)

        try:
            self.check_size(size)
            video = await self.storage.create_video(
                VideoCreate(
                    user_id=user_id,
                    filename=filename,
                    original_name=upload.filename,
                    duration=duration_ms,
                    size=size,
                    skill_category=category,
                    description=(description or "").strip() or None,
                )
            )
        except asyncio.CancelledError:
            logger.warning(f"Upload of {filename} cancelled, removing partial file")
            self.files.delete(filename)
            raise
        except Exception:
            self.files.delete(filename)
            raise

        logger.info(
            f"User {user_id} uploaded video {video.id} "
            f"({duration_ms}ms, {size} bytes, category={category})"
        )
        return video
