from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from app.schemas.user import UserRecord
from app.schemas.video import FeedVideo, VideoCreate, VideoRecord
from app.schemas.vote import VoteRecord, VoteTally, VoteType


class Storage(ABC):
    """Persistence capabilities the services depend on.

    Read paths return ``None`` or an empty list on a miss instead of raising.
    Vote writes keep at most one row per ``(user_id, video_id)``: ``create_vote``
    and ``update_vote`` both replace whatever vote the pair already has.
    """

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[UserRecord]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[UserRecord]: ...

    @abstractmethod
    async def get_user_by_telegram_chat_id(self, telegram_chat_id: int) -> Optional[UserRecord]: ...

    @abstractmethod
    async def create_user(
        self,
        username: str,
        password_hash: str,
        telegram_chat_id: Optional[int] = None,
    ) -> UserRecord: ...

    @abstractmethod
    async def create_video(self, data: VideoCreate, created_at: Optional[datetime] = None) -> VideoRecord: ...

    @abstractmethod
    async def get_video(self, video_id: UUID) -> Optional[VideoRecord]: ...

    @abstractmethod
    async def get_videos_by_user(self, user_id: UUID) -> List[VideoRecord]: ...

    @abstractmethod
    async def list_filenames(self) -> List[str]: ...

    @abstractmethod
    async def list_videos_with_votes(self, since: Optional[datetime] = None) -> List[FeedVideo]:
        """Videos with tallies and owner name, newest first, optionally from ``since`` on."""

    @abstractmethod
    async def create_vote(
        self,
        user_id: UUID,
        video_id: UUID,
        vote_type: VoteType,
        created_at: Optional[datetime] = None,
    ) -> VoteRecord: ...

    @abstractmethod
    async def update_vote(self, user_id: UUID, video_id: UUID, vote_type: VoteType) -> VoteRecord: ...

    @abstractmethod
    async def delete_vote(self, user_id: UUID, video_id: UUID) -> None: ...

    @abstractmethod
    async def get_user_vote(self, user_id: UUID, video_id: UUID) -> Optional[VoteRecord]: ...

    @abstractmethod
    async def count_user_votes(self, user_id: UUID, video_id: UUID) -> int: ...

    @abstractmethod
    async def get_video_votes(self, video_id: UUID) -> VoteTally: ...

    async def close(self) -> None:
        return None
