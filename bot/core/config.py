from pydantic import Field
from pydantic_settings import BaseSettings

from app.core.config import BaseConfig


class BotSettings(BaseSettings):
    bot_token: str = Field(..., alias="TELEGRAM_BOT_TOKEN")
    backend_api_url: str = Field(..., alias="BACKEND_API_URL")
    public_base_url: str = Field(default="", alias="PUBLIC_BASE_URL")
    feed_page_size: int = Field(default=5, ge=1, le=20, alias="FEED_PAGE_SIZE")

    model_config = BaseConfig.model_config


class TrimSettings(BaseSettings):
    ffmpeg_binary: str = Field(default="ffmpeg", alias="FFMPEG_BINARY")
    work_dir: str = Field(default="tmp/drafts", alias="TRIM_WORK_DIR")
    fast_path_timeout: float = Field(default=10.0, gt=0, alias="TRIM_FAST_PATH_TIMEOUT")
    fallback_fps: float = Field(default=30.0, gt=0, alias="TRIM_FALLBACK_FPS")
    max_frame_size: int = Field(default=1920, ge=16, alias="TRIM_MAX_FRAME_SIZE")

    model_config = BaseConfig.model_config
