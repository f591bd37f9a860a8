from fastapi import APIRouter
from app.api import auth, leaderboard, videos

api_router = APIRouter(prefix="/api")

api_router.include_router(auth.auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(videos.videos_router, prefix="/videos", tags=["videos"])
api_router.include_router(videos.users_router, prefix="/users", tags=["videos"])
api_router.include_router(leaderboard.leaderboard_router, prefix="/leaderboard", tags=["leaderboard"])

__all__ = ["api_router"]
