import html
from typing import Any, Dict, List

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message
from loguru import logger

from bot.clients.api_client import APIClient, APIError
from bot.core.config import BotSettings
from bot.handlers.keyboards import VOTE_LABELS, vote_keyboard
from bot.trim.draft import SKILL_CATEGORIES

router = Router()

MEDALS = {1: "🥇", 2: "🥈", 3: "🥉"}


def format_video(video: Dict[str, Any], public_base_url: str = "") -> str:
    category = SKILL_CATEGORIES.get(video["skillCategory"], video["skillCategory"])
    lines = [f"<b>{html.escape(video['username'])}</b> · {html.escape(category)} · {video['duration'] / 1000:.1f}s"]
    if video.get("description"):
        lines.append(html.escape(video["description"]))
    lines.append(f"Score: {video['score']}")
    if public_base_url:
        lines.append(f"{public_base_url.rstrip('/')}/uploads/{video['filename']}")
    return "\n".join(lines)


def format_leaderboard(entries: List[Dict[str, Any]]) -> str:
    if not entries:
        return "No clips this week yet. Be the first!"
    lines = ["<b>Weekly leaderboard</b>"]
    for entry in entries:
        place = MEDALS.get(entry["rank"], f"{entry['rank']}.")
        category = SKILL_CATEGORIES.get(entry["skillCategory"], entry["skillCategory"])
        lines.append(
            f"{place} {html.escape(entry['username'])} ({html.escape(category)}) - "
            f"{entry['totalScore']} pts, {entry['totalVotes']} votes"
        )
    return "\n".join(lines)


@router.message(Command("feed"))
async def cmd_feed(message: Message, api_client: APIClient, settings: BotSettings):
    try:
        videos = await api_client.list_videos()
    except APIError as e:
        await message.answer(f"Could not load the feed: {html.escape(str(e))}")
        return

    if not videos:
        await message.answer("No clips yet. Send me a video to be the first!")
        return

    for video in videos[:settings.feed_page_size]:
        await message.answer(
            format_video(video, settings.public_base_url),
            reply_markup=vote_keyboard(video["id"], video),
        )


@router.callback_query(F.data.startswith("vote:"))
async def handle_vote(callback: CallbackQuery, api_client: APIClient):
    _, video_id, vote_type = callback.data.split(":", 2)
    if vote_type not in VOTE_LABELS:
        await callback.answer("Unknown vote", show_alert=True)
        return

    try:
        vote, tally = await api_client.cast_vote(callback.message.chat.id, video_id, vote_type)
    except APIError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await callback.answer(f"Voted {VOTE_LABELS[vote_type]}" if vote else "Vote removed")
    try:
        await callback.message.edit_reply_markup(reply_markup=vote_keyboard(video_id, tally))
    except TelegramBadRequest as e:
        logger.debug(f"Vote keyboard not updated: {e}")


@router.message(Command("top"))
async def cmd_top(message: Message, api_client: APIClient):
    try:
        entries = await api_client.leaderboard()
    except APIError as e:
        await message.answer(f"Could not load the leaderboard: {html.escape(str(e))}")
        return
    await message.answer(format_leaderboard(entries))
