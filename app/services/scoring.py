from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from app.schemas.leaderboard import LeaderboardEntry
from app.schemas.video import FeedVideo
from app.schemas.vote import VoteTally

LEADERBOARD_SIZE = 10


def video_score(tally: VoteTally) -> int:
    return tally.likes + tally.wows - tally.dislikes


def start_of_week(now: datetime) -> datetime:
    """Monday 00:00:00.000 of the week containing ``now``, in ``now``'s timezone."""
    monday = now - timedelta(days=now.weekday())
    return monday.replace(hour=0, minute=0, second=0, microsecond=0)


def in_week(created_at: datetime, week_start: datetime) -> bool:
    return week_start <= created_at < week_start + timedelta(days=7)


class _UserTotals:
    __slots__ = ("user_id", "username", "total_score", "total_votes", "best_video")

    def __init__(self, video: FeedVideo):
        self.user_id = video.user_id
        self.username = video.username
        self.total_score = 0
        self.total_votes = 0
        self.best_video: Optional[FeedVideo] = None

    def add(self, video: FeedVideo) -> None:
        self.total_score += video.score
        self.total_votes += video.likes + video.dislikes + video.wows
        if self.best_video is None or (video.score, video.created_at) > (
            self.best_video.score,
            self.best_video.created_at,
        ):
            self.best_video = video


def rank_creators(
    videos: Iterable[FeedVideo],
    week_start: datetime,
    limit: int = LEADERBOARD_SIZE,
) -> List[LeaderboardEntry]:
    """Group in-window videos by owner and rank owners by summed score.

    Ties on ``total_score`` fall back to ``total_votes`` (higher first), then to
    ``username``. The reported category is that of the owner's best-scoring
    video in the window, the most recent one when scores are equal.
    """
    totals: Dict = {}
    for video in videos:
        if not in_week(video.created_at, week_start):
            continue
        entry = totals.get(video.user_id)
        if entry is None:
            entry = totals[video.user_id] = _UserTotals(video)
        entry.add(video)

    ordered = sorted(
        totals.values(),
        key=lambda t: (-t.total_score, -t.total_votes, t.username),
    )

    return [
        LeaderboardEntry(
            username=t.username,
            user_id=t.user_id,
            skill_category=t.best_video.skill_category,
            total_score=t.total_score,
            total_votes=t.total_votes,
            rank=position,
        )
        for position, t in enumerate(ordered[:limit], start=1)
    ]
