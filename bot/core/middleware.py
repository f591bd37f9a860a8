from typing import Callable, Dict, Any, Awaitable

from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from bot.clients.api_client import APIClient
from bot.trim.draft import DraftRegistry
from bot.trim.trimmer import VideoTrimmer


class APIClientMiddleware(BaseMiddleware):
    def __init__(self, api_client: APIClient, drafts: DraftRegistry, trimmer: VideoTrimmer):
        self.api_client = api_client
        self.drafts = drafts
        self.trimmer = trimmer

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        data["api_client"] = self.api_client
        data["drafts"] = self.drafts
        data["trimmer"] = self.trimmer
        return await handler(event, data)
