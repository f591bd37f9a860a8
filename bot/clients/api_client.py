from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

import httpx
from loguru import logger

from bot.core.config import BotSettings


class APIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class APIClient:
    def __init__(self, settings: BotSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings
        self.base_url = settings.backend_api_url.rstrip("/")
        self.bot_token = settings.bot_token
        self.client = httpx.AsyncClient(timeout=30.0, transport=transport)

    def _headers(self, telegram_chat_id: Optional[int] = None) -> Dict[str, str]:
        headers = {"X-Bot-Token": self.bot_token}
        if telegram_chat_id is not None:
            headers["X-Telegram-Chat-Id"] = str(telegram_chat_id)
        return headers

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, str):
            return detail
        return "Something went wrong, please try again later."

    async def create_telegram_user(self, telegram_chat_id: int, username: Optional[str] = None) -> Optional[UUID]:
        try:
            response = await self.client.post(
                f"{self.base_url}/auth/telegram",
                json={"telegramChatId": telegram_chat_id, "username": username},
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
            return UUID(data["id"])
        except httpx.HTTPStatusError as e:
            logger.error(f"API error creating user: {e.response.status_code} - {e.response.text}")
            return None
        except Exception as e:
            logger.exception(f"Error creating telegram user: {e}")
            return None

    async def upload_video(
        self,
        telegram_chat_id: int,
        path: Path,
        original_name: str,
        mime_type: str,
        skill_category: str,
        duration_ms: int,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            with open(path, "rb") as fh:
                response = await self.client.post(
                    f"{self.base_url}/videos",
                    files={"video": (original_name, fh, mime_type)},
                    data={
                        "skillCategory": skill_category,
                        "description": description or "",
                        "duration": str(duration_ms),
                    },
                    headers=self._headers(telegram_chat_id),
                    timeout=120.0,
                )
        except httpx.HTTPError as e:
            logger.exception(f"Error uploading video for chat {telegram_chat_id}: {e}")
            raise APIError("Network error, please try again.") from e

        if response.status_code >= 400:
            logger.error(f"API error uploading video: {response.status_code} - {response.text}")
            raise APIError(self._error_detail(response), response.status_code)
        return response.json()

    async def list_videos(self) -> List[Dict[str, Any]]:
        try:
            response = await self.client.get(f"{self.base_url}/videos")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"API error listing videos: {e.response.status_code} - {e.response.text}")
            raise APIError(self._error_detail(e.response), e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.exception(f"Error listing videos: {e}")
            raise APIError("Network error, please try again.") from e

    async def cast_vote(self, telegram_chat_id: int, video_id: str, vote_type: str) -> Tuple[Optional[Dict[str, Any]], Dict[str, int]]:
        try:
            response = await self.client.post(
                f"{self.base_url}/videos/{video_id}/vote",
                json={"voteType": vote_type},
                headers=self._headers(telegram_chat_id),
            )
            response.raise_for_status()
            data = response.json()
            return data.get("vote"), data["votes"]
        except httpx.HTTPStatusError as e:
            logger.error(f"API error casting vote: {e.response.status_code} - {e.response.text}")
            raise APIError(self._error_detail(e.response), e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.exception(f"Error casting vote: {e}")
            raise APIError("Network error, please try again.") from e

    async def leaderboard(self) -> List[Dict[str, Any]]:
        try:
            response = await self.client.get(f"{self.base_url}/leaderboard")
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"API error fetching leaderboard: {e.response.status_code} - {e.response.text}")
            raise APIError(self._error_detail(e.response), e.response.status_code) from e
        except httpx.HTTPError as e:
            logger.exception(f"Error fetching leaderboard: {e}")
            raise APIError("Network error, please try again.") from e

    async def close(self):
        await self.client.aclose()
