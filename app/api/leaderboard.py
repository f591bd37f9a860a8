from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.core.dependencies import get_score_service
from app.schemas.leaderboard import LeaderboardEntry
from app.services.score_service import ScoreService

leaderboard_router = APIRouter()


@leaderboard_router.get("", response_model=List[LeaderboardEntry])
async def weekly_leaderboard(score_service: ScoreService = Depends(get_score_service)):
    try:
        return await score_service.weekly_leaderboard()
    except Exception as e:
        logger.exception(f"Error building leaderboard: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch leaderboard",
        )
