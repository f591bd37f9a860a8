from typing import Dict

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from bot.trim.draft import SKILL_CATEGORIES

VOTE_LABELS = {
    "like": "👍",
    "dislike": "👎",
    "wow": "🤩",
}

TALLY_KEYS = {
    "like": "likes",
    "dislike": "dislikes",
    "wow": "wows",
}


def category_keyboard() -> InlineKeyboardMarkup:
    buttons = [
        InlineKeyboardButton(text=label, callback_data=f"category:{key}")
        for key, label in SKILL_CATEGORIES.items()
    ]
    rows = [buttons[i:i + 2] for i in range(0, len(buttons), 2)]
    return InlineKeyboardMarkup(inline_keyboard=rows)


def terms_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(
            text="I agree to the community guidelines and terms of service",
            callback_data="terms:accept",
        )
    ]])


def submit_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="Upload clip", callback_data="submit"),
        InlineKeyboardButton(text="Cancel", callback_data="cancel"),
    ]])


def vote_keyboard(video_id: str, tally: Dict[str, int]) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(
            text=f"{emoji} {tally.get(TALLY_KEYS[vote_type], 0)}",
            callback_data=f"vote:{video_id}:{vote_type}",
        )
        for vote_type, emoji in VOTE_LABELS.items()
    ]])
