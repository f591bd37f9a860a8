import uuid
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from loguru import logger

from app.core.exceptions import UsernameTakenError
from app.schemas.user import UserRecord
from app.schemas.video import FeedVideo, VideoCreate, VideoRecord
from app.schemas.vote import VoteRecord, VoteTally, VoteType
from app.services.scoring import video_score
from app.storage.base import Storage


def _now() -> datetime:
    return datetime.now().astimezone()


class MemoryStorage(Storage):
    """Dict-backed storage for development and tests.

    Every method runs without awaiting in between, so each call is atomic with
    respect to other coroutines on the same loop.
    """

    def __init__(self):
        self._users: Dict[UUID, UserRecord] = {}
        self._videos: Dict[UUID, VideoRecord] = {}
        self._votes: Dict[UUID, VoteRecord] = {}

    async def get_user(self, user_id: UUID) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        return next((u for u in self._users.values() if u.username == username), None)

    async def get_user_by_telegram_chat_id(self, telegram_chat_id: int) -> Optional[UserRecord]:
        return next(
            (u for u in self._users.values() if u.telegram_chat_id == telegram_chat_id),
            None,
        )

    async def create_user(
        self,
        username: str,
        password_hash: str,
        telegram_chat_id: Optional[int] = None,
    ) -> UserRecord:
        if await self.get_user_by_username(username):
            raise UsernameTakenError(username)

        user = UserRecord(
            id=uuid.uuid4(),
            username=username,
            password_hash=password_hash,
            telegram_chat_id=telegram_chat_id,
            created_at=_now(),
        )
        self._users[user.id] = user
        return user

    async def create_video(self, data: VideoCreate, created_at: Optional[datetime] = None) -> VideoRecord:
        video = VideoRecord(
            **data.model_dump(),
            id=uuid.uuid4(),
            created_at=created_at or _now(),
        )
        self._videos[video.id] = video
        return video

    async def get_video(self, video_id: UUID) -> Optional[VideoRecord]:
        return self._videos.get(video_id)

    async def get_videos_by_user(self, user_id: UUID) -> List[VideoRecord]:
        videos = [v for v in self._videos.values() if v.user_id == user_id]
        return sorted(videos, key=lambda v: v.created_at, reverse=True)

    async def list_filenames(self) -> List[str]:
        return [v.filename for v in self._videos.values()]

    async def list_videos_with_votes(self, since: Optional[datetime] = None) -> List[FeedVideo]:
        result = []
        for video in self._videos.values():
            if since is not None and video.created_at < since:
                continue

            user = self._users.get(video.user_id)
            tally = self._tally(video.id)
            result.append(
                FeedVideo(
                    **video.model_dump(),
                    username=user.username if user else "Unknown",
                    likes=tally.likes,
                    dislikes=tally.dislikes,
                    wows=tally.wows,
                    score=video_score(tally),
                )
            )

        return sorted(result, key=lambda v: v.created_at, reverse=True)

    async def create_vote(
        self,
        user_id: UUID,
        video_id: UUID,
        vote_type: VoteType,
        created_at: Optional[datetime] = None,
    ) -> VoteRecord:
        self._remove_votes(user_id, video_id)

        vote = VoteRecord(
            id=uuid.uuid4(),
            user_id=user_id,
            video_id=video_id,
            vote_type=vote_type,
            created_at=created_at or _now(),
        )
        self._votes[vote.id] = vote
        return vote

    async def update_vote(self, user_id: UUID, video_id: UUID, vote_type: VoteType) -> VoteRecord:
        return await self.create_vote(user_id, video_id, vote_type)

    async def delete_vote(self, user_id: UUID, video_id: UUID) -> None:
        removed = self._remove_votes(user_id, video_id)
        if removed:
            logger.debug(f"Removed vote of user {user_id} on video {video_id}")

    async def get_user_vote(self, user_id: UUID, video_id: UUID) -> Optional[VoteRecord]:
        return next(
            (v for v in self._votes.values() if v.user_id == user_id and v.video_id == video_id),
            None,
        )

    async def count_user_votes(self, user_id: UUID, video_id: UUID) -> int:
        return sum(1 for v in self._votes.values() if v.user_id == user_id and v.video_id == video_id)

    async def get_video_votes(self, video_id: UUID) -> VoteTally:
        return self._tally(video_id)

    def _tally(self, video_id: UUID) -> VoteTally:
        counts = {VoteType.LIKE: 0, VoteType.DISLIKE: 0, VoteType.WOW: 0}
        for vote in self._votes.values():
            if vote.video_id == video_id:
                counts[vote.vote_type] += 1
        return VoteTally(
            likes=counts[VoteType.LIKE],
            dislikes=counts[VoteType.DISLIKE],
            wows=counts[VoteType.WOW],
        )

    def _remove_votes(self, user_id: UUID, video_id: UUID) -> int:
        stale = [
            vote_id
            for vote_id, vote in self._votes.items()
            if vote.user_id == user_id and vote.video_id == video_id
        ]
        for vote_id in stale:
            del self._votes[vote_id]
        return len(stale)
