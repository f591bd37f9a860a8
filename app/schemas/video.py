from datetime import datetime
from typing import Optional
from uuid import UUID

from app.schemas.base import CamelModel


class VideoCreate(CamelModel):
    user_id: UUID
    filename: str
    original_name: str
    duration: int
    size: int
    skill_category: str
    description: Optional[str] = None


class VideoRecord(VideoCreate):
    id: UUID
    created_at: datetime


class FeedVideo(VideoRecord):
    username: str
    likes: int = 0
    dislikes: int = 0
    wows: int = 0
    score: int = 0
