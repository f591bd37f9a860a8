import os
import random
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

from loguru import logger

from app.core.exceptions import UploadValidationError


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class FileTooLargeError(UploadValidationError):
    def __init__(self, limit_bytes: int):
        super().__init__(f"File exceeds the {limit_bytes // (1024 * 1024)}MB limit")
        self.limit_bytes = limit_bytes


class FileStorage:
    """Local directory holding uploaded clips, keyed by generated filename."""

    def __init__(self, root: str, chunk_size: int = 1024 * 1024):
        self.root = Path(root)
        self.chunk_size = chunk_size
        self.root.mkdir(parents=True, exist_ok=True)

    def generate_filename(self, original_name: str) -> str:
        suffix = Path(original_name).suffix.lower()
        return f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"

    def path_for(self, filename: str) -> Path:
        path = (self.root / filename).resolve()
        if path.parent != self.root.resolve():
            raise ValueError(f"Invalid storage key: {filename}")
        return path

    async def save(self, source: AsyncReadable, filename: str, max_bytes: Optional[int] = None) -> int:
        """Copy ``source`` into storage chunk by chunk and return the byte count.

        The file is removed again when the copy fails, is cancelled or grows past
        ``max_bytes``.
        """
        path = self.path_for(filename)
        written = 0
        try:
            with open(path, "wb") as out:
                while True:
                    chunk = await source.read(self.chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise FileTooLargeError(max_bytes)
                    out.write(chunk)
        except BaseException:
            self.delete(filename)
            raise

        logger.debug(f"Stored {filename} ({written} bytes)")
        return written

    def delete(self, filename: str) -> bool:
        try:
            self.path_for(filename).unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted stored file {filename}")
        return True

    def exists(self, filename: str) -> bool:
        return self.path_for(filename).exists()

    def list_files(self) -> List[str]:
        return sorted(p.name for p in self.root.iterdir() if p.is_file())

    def modified_at(self, filename: str) -> datetime:
        mtime = os.path.getmtime(self.path_for(filename))
        return datetime.fromtimestamp(mtime, tz=timezone.utc)
