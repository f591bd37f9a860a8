from loguru import logger

from app.core.config import AppSettings, StorageBackend
from app.storage.base import Storage


def build_storage(settings: AppSettings) -> Storage:
    if settings.storage_backend == StorageBackend.POSTGRES:
        from app.storage.database import DatabaseStorage

        logger.info("Using PostgreSQL storage")
        return DatabaseStorage()

    from app.storage.memory import MemoryStorage

    logger.warning("Using in-memory storage, data is lost on restart")
    return MemoryStorage()
