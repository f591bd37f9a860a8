import re
from typing import Optional, Tuple

from loguru import logger

from app.core.exceptions import UsernameTakenError
from app.schemas.user import UserRecord
from app.storage.base import Storage
from app.utils.password import hash_password, unusable_password_hash, verify_password


class UserService:
    def __init__(self, storage: Storage):
        self.storage = storage

    async def register(self, username: str, password: str) -> UserRecord:
        if await self.storage.get_user_by_username(username):
            raise UsernameTakenError(username)

        user = await self.storage.create_user(username, hash_password(password))
        logger.info(f"Registered user {user.id} ({username})")
        return user

    async def authenticate(self, username: str, password: str) -> Optional[UserRecord]:
        user = await self.storage.get_user_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"Failed login for {username}")
            return None
        return user

    async def create_or_get_telegram_user(
        self,
        telegram_chat_id: int,
        telegram_username: Optional[str] = None,
    ) -> Tuple[UserRecord, bool]:
        user = await self.storage.get_user_by_telegram_chat_id(telegram_chat_id)

        if user:
            logger.info(f"Found existing user {user.id} for chat {telegram_chat_id}")
            return user, False

        logger.info(f"Creating new user for chat {telegram_chat_id}")

        username = self._telegram_username(telegram_chat_id, telegram_username)
        if await self.storage.get_user_by_username(username):
            username = f"{username[:50]}_{telegram_chat_id}"

        new_user = await self.storage.create_user(
            username,
            unusable_password_hash(),
            telegram_chat_id=telegram_chat_id,
        )

        logger.info(f"Created new user {new_user.id} for chat {telegram_chat_id}")

        return new_user, True

    @staticmethod
    def _telegram_username(telegram_chat_id: int, telegram_username: Optional[str]) -> str:
        cleaned = re.sub(r"[^A-Za-z0-9_.-]", "", telegram_username or "")
        if len(cleaned) >= 3:
            return cleaned[:64]
        return f"tg_{abs(telegram_chat_id)}"
