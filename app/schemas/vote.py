from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from app.schemas.base import CamelModel


class VoteType(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    WOW = "wow"


class VoteRecord(CamelModel):
    id: UUID
    user_id: UUID
    video_id: UUID
    vote_type: VoteType
    created_at: datetime


class VoteRequest(CamelModel):
    vote_type: VoteType


class VoteTally(CamelModel):
    likes: int = 0
    dislikes: int = 0
    wows: int = 0

    @property
    def total(self) -> int:
        return self.likes + self.dislikes + self.wows


class VoteResult(CamelModel):
    vote: Optional[VoteRecord] = None
    votes: VoteTally


class CurrentVoteResponse(CamelModel):
    vote: Optional[VoteRecord] = None
