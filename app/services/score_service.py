from datetime import datetime
from typing import Callable, List, Optional

from dateutil import tz
from loguru import logger

from app.schemas.leaderboard import LeaderboardEntry
from app.schemas.video import FeedVideo
from app.services.scoring import LEADERBOARD_SIZE, rank_creators, start_of_week
from app.storage.base import Storage


def local_now() -> datetime:
    # zone-aware: Monday 00:00 may sit on the other side of a DST change
    return datetime.now(tz.tzlocal())


class ScoreService:
    """Read-side aggregation: the scored feed and the weekly leaderboard.

    Nothing is cached. The week boundary is recomputed from the clock on every
    call, so the leaderboard resets at Monday midnight local time.
    """

    def __init__(self, storage: Storage, clock: Callable[[], datetime] = local_now):
        self.storage = storage
        self.clock = clock

    async def feed(self) -> List[FeedVideo]:
        return await self.storage.list_videos_with_votes()

    async def weekly_leaderboard(
        self,
        now: Optional[datetime] = None,
        limit: int = LEADERBOARD_SIZE,
    ) -> List[LeaderboardEntry]:
        week_start = start_of_week(now or self.clock())
        videos = await self.storage.list_videos_with_votes(since=week_start)
        entries = rank_creators(videos, week_start, limit=limit)
        logger.debug(f"Leaderboard since {week_start.isoformat()}: {len(entries)} entries from {len(videos)} videos")
        return entries
