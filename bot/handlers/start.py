from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message
from loguru import logger

from bot.clients.api_client import APIClient

router = Router()

HELP_TEXT = (
    "Send me a video of your skill (MP4, MOV or AVI, up to 50MB).\n"
    "Clips must be 5 seconds or less, longer videos can be trimmed here.\n\n"
    "/feed - latest clips, vote with the buttons\n"
    "/top - this week's leaderboard\n"
    "/describe &lt;text&gt; - add a description to your clip\n"
    "/cancel - drop the clip you are preparing"
)


@router.message(CommandStart())
async def cmd_start(message: Message, api_client: APIClient):
    chat_id = message.chat.id
    username = message.from_user.username if message.from_user else None

    logger.info(f"User {chat_id} started the bot")

    user_id = await api_client.create_telegram_user(telegram_chat_id=chat_id, username=username)

    if user_id:
        await message.answer(f"Welcome! You are signed in.\n\n{HELP_TEXT}")
        logger.info(f"User {chat_id} authorized with ID {user_id}")
    else:
        await message.answer(
            "Sign in failed. Please try again later."
        )
        logger.error(f"Failed to authorize user {chat_id}")


@router.message(Command("help"))
async def cmd_help(message: Message):
    await message.answer(HELP_TEXT)
