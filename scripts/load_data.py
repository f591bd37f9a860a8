import asyncio
import sys
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.config import AppSettings, StorageBackend, UploadSettings
from app.services.data_loader_service import DataLoaderService
from app.services.file_storage import FileStorage
from app.services.upload_service import UploadGate
from app.storage.factory import build_storage


async def load(
    json_file_path: str,
    app_settings: Optional[AppSettings] = None,
    upload_settings: Optional[UploadSettings] = None,
) -> Dict[str, int]:
    app_settings = app_settings or AppSettings()
    upload_settings = upload_settings or UploadSettings()

    if app_settings.storage_backend != StorageBackend.POSTGRES:
        # the in-memory store would vanish with this process
        raise RuntimeError("Loading seed data requires STORAGE_BACKEND=postgres")

    from app.db.database import create_tables

    await create_tables()
    storage = build_storage(app_settings)
    try:
        gate = UploadGate(storage, FileStorage(upload_settings.upload_dir), upload_settings)
        loader = DataLoaderService(storage, gate)
        return await loader.load_from_json_file(json_file_path)
    finally:
        await storage.close()


async def main():
    if len(sys.argv) < 2:
        logger.error("Usage: python scripts/load_data.py <path_to_json_file>")
        sys.exit(1)

    json_file_path = sys.argv[1]

    if not Path(json_file_path).exists():
        logger.error(f"File not found: {json_file_path}")
        sys.exit(1)

    logger.info("Starting data loading process...")

    try:
        result = await load(json_file_path)
    except Exception as e:
        logger.exception(f"Error loading data: {e}")
        sys.exit(1)

    logger.success(
        f"Data loading completed successfully!\n"
        f"  Users loaded: {result['users']}\n"
        f"  Videos loaded: {result['videos']}\n"
        f"  Votes loaded: {result['votes']}"
    )


if __name__ == "__main__":
    asyncio.run(main())
