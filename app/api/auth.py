from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.core.dependencies import get_user_service
from app.core.exceptions import UsernameTakenError
from app.schemas.token import RefreshRequest, Token
from app.schemas.user import TelegramUserCreate, UserCreate, UserLogin, UserRecord, UserResponse
from app.services.user_service import UserService
from app.utils.security import (
    create_access_token,
    create_refresh_token,
    get_user,
    refresh_access_token,
    verify_bot_token,
)

auth_router = APIRouter()


@auth_router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: UserCreate,
    user_service: UserService = Depends(get_user_service),
):
    try:
        user = await user_service.register(payload.username, payload.password)
    except UsernameTakenError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.exception(f"Error registering user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Registration failed",
        )
    return UserResponse.model_validate(user)


@auth_router.post("/login", response_model=Token)
async def login(
    payload: UserLogin,
    user_service: UserService = Depends(get_user_service),
):
    user = await user_service.authenticate(payload.username, payload.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    claims = {"id": str(user.id)}
    return Token(
        access_token=await create_access_token(claims),
        refresh_token=await create_refresh_token(claims),
    )


@auth_router.post("/refresh", response_model=Token)
async def refresh(payload: RefreshRequest):
    access_token = await refresh_access_token(payload.refresh_token)
    return Token(access_token=access_token)


@auth_router.get("/me", response_model=UserResponse)
async def me(user: UserRecord = Depends(get_user)):
    return UserResponse.model_validate(user)


@auth_router.post("/telegram", response_model=UserResponse)
async def create_telegram_user(
    payload: TelegramUserCreate,
    user_service: UserService = Depends(get_user_service),
    bot_token: str = Depends(verify_bot_token),
):
    try:
        user, is_new = await user_service.create_or_get_telegram_user(
            telegram_chat_id=payload.telegram_chat_id,
            telegram_username=payload.username,
        )

        return UserResponse.model_validate(user)
    except Exception as e:
        logger.exception(f"Error creating telegram user: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create telegram user",
        )
