from uuid import UUID

from app.schemas.base import CamelModel


class LeaderboardEntry(CamelModel):
    username: str
    user_id: UUID
    skill_category: str
    total_score: int
    total_votes: int
    rank: int
