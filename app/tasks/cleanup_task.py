from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Set

from loguru import logger

from app.core.config import AppSettings, StorageBackend, UploadSettings
from app.services.file_storage import FileStorage
from app.storage.factory import build_storage


def find_orphans(
    stored: Iterable[str],
    known: Set[str],
    modified_at: Callable[[str], datetime],
    cutoff: datetime,
) -> List[str]:
    """Stored files with no video record that were last touched before ``cutoff``."""
    return [name for name in stored if name not in known and modified_at(name) < cutoff]


async def sweep_orphaned_uploads(ctx: Dict[str, Any]) -> int:
    storage = ctx["storage"]
    files: FileStorage = ctx["file_storage"]
    grace = timedelta(minutes=ctx["upload_settings"].orphan_grace_minutes)

    try:
        known = set(await storage.list_filenames())
        cutoff = datetime.now(timezone.utc) - grace
        orphans = find_orphans(files.list_files(), known, files.modified_at, cutoff)

        for name in orphans:
            files.delete(name)

        if orphans:
            logger.info(f"Removed {len(orphans)} orphaned uploads")
        return len(orphans)

    except Exception as e:
        logger.exception(f"Error sweeping orphaned uploads: {e}")
        raise


async def startup(ctx: Dict[str, Any]) -> None:
    app_settings = AppSettings()
    upload_settings = UploadSettings()

    if app_settings.storage_backend != StorageBackend.POSTGRES:
        # the in-memory store lives in the API process, the worker cannot see its records
        raise RuntimeError("The cleanup worker requires STORAGE_BACKEND=postgres")

    ctx["storage"] = build_storage(app_settings)
    ctx["file_storage"] = FileStorage(upload_settings.upload_dir)
    ctx["upload_settings"] = upload_settings


async def shutdown(ctx: Dict[str, Any]) -> None:
    storage = ctx.get("storage")
    if storage is not None:
        await storage.close()
