from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
import uvicorn
from loguru import logger

from app.core.config import AppSettings, StorageBackend, UploadSettings
from app.api import api_router
from app.services.file_storage import FileStorage
from app.services.score_service import ScoreService
from app.services.upload_service import UploadGate
from app.services.vote_service import VoteService
from app.storage.base import Storage
from app.storage.factory import build_storage


def get_app_settings() -> AppSettings:
    try:
        return AppSettings()
    except Exception as e:
        logger.error(f"Error loading settings: {e}")
        raise

_log_sink_id = None

def setup_logging(settings: AppSettings):
    global _log_sink_id
    if _log_sink_id is not None:
        return
    _log_sink_id = logger.add(
        settings.log_file,
        rotation=settings.log_rotation,
        compression=settings.log_compression.value,
        format=settings.log_format,
        level=settings.app_log_level.value.upper(),
    )

def create_app(storage: Optional[Storage] = None, upload_settings: Optional[UploadSettings] = None):
    settings = get_app_settings()
    upload_settings = upload_settings or UploadSettings()
    setup_logging(settings)

    storage = storage or build_storage(settings)
    file_storage = FileStorage(upload_settings.upload_dir, chunk_size=upload_settings.chunk_size)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.storage_backend == StorageBackend.POSTGRES:
            from app.db.database import create_tables

            await create_tables()
        logger.info(f"{settings.app_name} started")
        yield
        await storage.close()
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        description="Short skill clips, community votes and a weekly leaderboard",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.storage = storage
    app.state.file_storage = file_storage
    app.state.vote_service = VoteService(storage)
    app.state.score_service = ScoreService(storage)
    app.state.upload_gate = UploadGate(storage, file_storage, upload_settings)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(api_router)
    app.mount("/uploads", StaticFiles(directory=upload_settings.upload_dir), name="uploads")

    return app

if __name__ == "__main__":
    settings = get_app_settings()
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_reload,
    )
