from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from loguru import logger

from app.core.dependencies import get_score_service, get_storage, get_upload_gate, get_vote_service
from app.core.exceptions import UploadValidationError, VideoNotFoundError
from app.schemas.user import UserRecord
from app.schemas.video import FeedVideo, VideoRecord
from app.schemas.vote import CurrentVoteResponse, VoteRequest, VoteResult
from app.services.score_service import ScoreService
from app.services.upload_service import UploadGate
from app.services.vote_service import VoteService
from app.storage.base import Storage
from app.utils.security import get_user

videos_router = APIRouter()
users_router = APIRouter()


@videos_router.get("", response_model=List[FeedVideo])
async def list_videos(score_service: ScoreService = Depends(get_score_service)):
    try:
        return await score_service.feed()
    except Exception as e:
        logger.exception(f"Error fetching videos: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch videos",
        )


@videos_router.post("", response_model=VideoRecord, status_code=status.HTTP_201_CREATED)
async def upload_video(
    video: Optional[UploadFile] = File(None),
    skill_category: Optional[str] = Form(None, alias="skillCategory"),
    description: Optional[str] = Form(None),
    duration: Optional[str] = Form(None),
    user: UserRecord = Depends(get_user),
    gate: UploadGate = Depends(get_upload_gate),
):
    try:
        return await gate.accept(user.id, video, skill_category, description, duration)
    except UploadValidationError as e:
        logger.warning(f"Upload rejected for user {user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.exception(f"Error uploading video for user {user.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Upload failed",
        )


@videos_router.post("/{video_id}/vote", response_model=VoteResult)
async def cast_vote(
    video_id: UUID,
    payload: VoteRequest,
    user: UserRecord = Depends(get_user),
    vote_service: VoteService = Depends(get_vote_service),
):
    try:
        return await vote_service.cast_vote(user.id, video_id, payload.vote_type)
    except VideoNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.exception(f"Error casting vote on {video_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Vote failed",
        )


@videos_router.get("/{video_id}/vote", response_model=CurrentVoteResponse)
async def get_vote(
    video_id: UUID,
    user: UserRecord = Depends(get_user),
    vote_service: VoteService = Depends(get_vote_service),
):
    try:
        vote = await vote_service.get_user_vote(user.id, video_id)
    except Exception as e:
        logger.exception(f"Error fetching vote on {video_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch vote",
        )
    return CurrentVoteResponse(vote=vote)


@users_router.get("/{user_id}/videos", response_model=List[VideoRecord])
async def list_user_videos(user_id: UUID, storage: Storage = Depends(get_storage)):
    try:
        return await storage.get_videos_by_user(user_id)
    except Exception as e:
        logger.exception(f"Error fetching videos of user {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch videos",
        )
