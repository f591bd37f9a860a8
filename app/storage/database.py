import uuid
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import UsernameTakenError
from app.db.database import dispose_engine, get_async_sessionmaker
from app.models.users import Users
from app.models.videos import Video
from app.models.votes import Vote
from app.schemas.user import UserRecord
from app.schemas.video import FeedVideo, VideoCreate, VideoRecord
from app.schemas.vote import VoteRecord, VoteTally, VoteType
from app.services.scoring import video_score
from app.storage.base import Storage


def _count_of(vote_type: VoteType):
    return func.coalesce(
        func.sum(case((Vote.vote_type == vote_type.value, 1), else_=0)), 0
    )


def build_vote_upsert(
    user_id: UUID,
    video_id: UUID,
    vote_type: VoteType,
    created_at: Optional[datetime] = None,
):
    stmt = pg_insert(Vote).values(
        id=uuid.uuid4(),
        user_id=user_id,
        video_id=video_id,
        vote_type=vote_type.value,
        created_at=created_at or func.now(),
    )
    # a replaced vote is a new logical vote: fresh id and timestamp
    return stmt.on_conflict_do_update(
        constraint="uq_votes_user_video",
        set_={
            "id": stmt.excluded.id,
            "vote_type": stmt.excluded.vote_type,
            "created_at": stmt.excluded.created_at,
        },
    ).returning(Vote)


class DatabaseStorage(Storage):
    """PostgreSQL storage.

    Vote writes are a single ``INSERT ... ON CONFLICT (user_id, video_id) DO
    UPDATE`` against ``uq_votes_user_video``, so concurrent casts from the same
    user on the same video cannot leave two rows behind.
    """

    def __init__(self, sessionmaker=None):
        self._sessionmaker = sessionmaker or get_async_sessionmaker()

    async def get_user(self, user_id: UUID) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(Users).where(Users.id == user_id))
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    async def get_user_by_username(self, username: str) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(Users).where(Users.username == username))
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    async def get_user_by_telegram_chat_id(self, telegram_chat_id: int) -> Optional[UserRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Users).where(Users.telegram_chat_id == telegram_chat_id)
            )
            user = result.scalar_one_or_none()
            return UserRecord.model_validate(user) if user else None

    async def create_user(
        self,
        username: str,
        password_hash: str,
        telegram_chat_id: Optional[int] = None,
    ) -> UserRecord:
        async with self._sessionmaker() as session:
            user = Users(
                username=username,
                password_hash=password_hash,
                telegram_chat_id=telegram_chat_id,
            )
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(f"Could not create user {username}: {e.orig}")
                raise UsernameTakenError(username) from e
            await session.refresh(user)
            return UserRecord.model_validate(user)

    async def create_video(self, data: VideoCreate, created_at: Optional[datetime] = None) -> VideoRecord:
        async with self._sessionmaker() as session:
            video = Video(**data.model_dump())
            if created_at is not None:
                video.created_at = created_at
            session.add(video)
            try:
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            await session.refresh(video)
            return VideoRecord.model_validate(video)

    async def get_video(self, video_id: UUID) -> Optional[VideoRecord]:
        async with self._sessionmaker() as session:
            video = await session.get(Video, video_id)
            return VideoRecord.model_validate(video) if video else None

    async def get_videos_by_user(self, user_id: UUID) -> List[VideoRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc())
            )
            return [VideoRecord.model_validate(v) for v in result.scalars().all()]

    async def list_filenames(self) -> List[str]:
        async with self._sessionmaker() as session:
            result = await session.execute(select(Video.filename))
            return list(result.scalars().all())

    async def list_videos_with_votes(self, since: Optional[datetime] = None) -> List[FeedVideo]:
        stmt = (
            select(
                Video,
                Users.username,
                _count_of(VoteType.LIKE).label("likes"),
                _count_of(VoteType.DISLIKE).label("dislikes"),
                _count_of(VoteType.WOW).label("wows"),
            )
            .outerjoin(Users, Video.user_id == Users.id)
            .outerjoin(Vote, Vote.video_id == Video.id)
            .group_by(Video.id, Users.username)
            .order_by(Video.created_at.desc())
        )
        if since is not None:
            stmt = stmt.where(Video.created_at >= since)

        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            feed = []
            for video, username, likes, dislikes, wows in result.all():
                tally = VoteTally(likes=likes, dislikes=dislikes, wows=wows)
                feed.append(
                    FeedVideo(
                        **VideoRecord.model_validate(video).model_dump(),
                        username=username or "Unknown",
                        likes=tally.likes,
                        dislikes=tally.dislikes,
                        wows=tally.wows,
                        score=video_score(tally),
                    )
                )
            logger.debug(f"Fetched {len(feed)} videos with votes (since={since})")
            return feed

    async def create_vote(
        self,
        user_id: UUID,
        video_id: UUID,
        vote_type: VoteType,
        created_at: Optional[datetime] = None,
    ) -> VoteRecord:
        stmt = build_vote_upsert(user_id, video_id, vote_type, created_at)

        async with self._sessionmaker() as session:
            try:
                result = await session.execute(stmt)
                vote = result.scalar_one()
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            return VoteRecord.model_validate(vote)

    async def update_vote(self, user_id: UUID, video_id: UUID, vote_type: VoteType) -> VoteRecord:
        return await self.create_vote(user_id, video_id, vote_type)

    async def delete_vote(self, user_id: UUID, video_id: UUID) -> None:
        async with self._sessionmaker() as session:
            await session.execute(
                delete(Vote).where(Vote.user_id == user_id, Vote.video_id == video_id)
            )
            await session.commit()

    async def get_user_vote(self, user_id: UUID, video_id: UUID) -> Optional[VoteRecord]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Vote).where(Vote.user_id == user_id, Vote.video_id == video_id)
            )
            vote = result.scalars().first()
            return VoteRecord.model_validate(vote) if vote else None

    async def count_user_votes(self, user_id: UUID, video_id: UUID) -> int:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(func.count(Vote.id)).where(Vote.user_id == user_id, Vote.video_id == video_id)
            )
            return int(result.scalar_one() or 0)

    async def get_video_votes(self, video_id: UUID) -> VoteTally:
        stmt = select(
            _count_of(VoteType.LIKE),
            _count_of(VoteType.DISLIKE),
            _count_of(VoteType.WOW),
        ).where(Vote.video_id == video_id)

        async with self._sessionmaker() as session:
            result = await session.execute(stmt)
            likes, dislikes, wows = result.one()
            return VoteTally(likes=int(likes), dislikes=int(dislikes), wows=int(wows))

    async def close(self) -> None:
        await dispose_engine()
