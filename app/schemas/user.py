from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from app.schemas.base import CamelModel


class UserBase(CamelModel):
    username: str = Field(..., min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")


class UserCreate(UserBase):
    password: str = Field(..., min_length=6, max_length=128)


class UserLogin(CamelModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TelegramUserCreate(CamelModel):
    telegram_chat_id: int = Field(..., description="Telegram chat ID")
    username: Optional[str] = Field(default=None, max_length=64)


class UserRecord(UserBase):
    id: UUID
    password_hash: str
    telegram_chat_id: Optional[int] = None
    created_at: datetime


class UserResponse(UserBase):
    id: UUID
    created_at: datetime
