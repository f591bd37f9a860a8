import asyncio
from collections import defaultdict
from typing import Dict, Optional, Tuple
from uuid import UUID

from loguru import logger

from app.core.exceptions import VideoNotFoundError
from app.schemas.vote import VoteRecord, VoteResult, VoteType
from app.storage.base import Storage


class KeyedLock:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[Tuple, asyncio.Lock] = {}
        self._users: Dict[Tuple, int] = defaultdict(int)

    def __call__(self, *key):
        return _KeyedLockContext(self, key)

    def __len__(self) -> int:
        return len(self._locks)


class _KeyedLockContext:
    def __init__(self, owner: KeyedLock, key: Tuple):
        self.owner = owner
        self.key = key

    async def __aenter__(self):
        lock = self.owner._locks.setdefault(self.key, asyncio.Lock())
        self.owner._users[self.key] += 1
        try:
            await lock.acquire()
        except BaseException:
            self._release_slot()
            raise
        return lock

    async def __aexit__(self, exc_type, exc, tb):
        self.owner._locks[self.key].release()
        self._release_slot()

    def _release_slot(self):
        self.owner._users[self.key] -= 1
        if self.owner._users[self.key] == 0:
            del self.owner._users[self.key]
            del self.owner._locks[self.key]


class VoteService:
    """Toggle-or-replace policy on top of the storage vote primitives."""

    def __init__(self, storage: Storage, locks: Optional[KeyedLock] = None):
        self.storage = storage
        self.locks = locks or KeyedLock()

    async def cast_vote(self, user_id: UUID, video_id: UUID, vote_type: VoteType) -> VoteResult:
        video = await self.storage.get_video(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)

        async with self.locks(user_id, video_id):
            vote = await self._apply(user_id, video_id, vote_type)

        votes = await self.storage.get_video_votes(video_id)
        return VoteResult(vote=vote, votes=votes)

    async def _apply(self, user_id: UUID, video_id: UUID, vote_type: VoteType) -> Optional[VoteRecord]:
        existing = await self.storage.get_user_vote(user_id, video_id)

        if existing is None:
            vote = await self.storage.create_vote(user_id, video_id, vote_type)
            logger.info(f"User {user_id} voted {vote_type.value} on video {video_id}")
            return vote

        if existing.vote_type == vote_type:
            await self.storage.delete_vote(user_id, video_id)
            logger.info(f"User {user_id} retracted {vote_type.value} on video {video_id}")
            return None

        vote = await self.storage.update_vote(user_id, video_id, vote_type)
        logger.info(
            f"User {user_id} changed vote on video {video_id}: "
            f"{existing.vote_type.value} -> {vote_type.value}"
        )
        return vote

    async def get_user_vote(self, user_id: UUID, video_id: UUID) -> Optional[VoteRecord]:
        return await self.storage.get_user_vote(user_id, video_id)
