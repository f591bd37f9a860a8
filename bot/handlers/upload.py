import asyncio
import html
import shutil
import uuid
from pathlib import Path
from typing import Optional, Tuple

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, Message
from loguru import logger

from bot.clients.api_client import APIClient, APIError
from bot.handlers.keyboards import category_keyboard, submit_keyboard, terms_keyboard
from bot.trim.draft import SKILL_CATEGORIES, DraftRegistry, DraftState, UploadDraft
from bot.trim.errors import DraftStateError, DraftValidationError, TrimError
from bot.trim.probe import probe_duration_ms
from bot.trim.progress import TrimProgress
from bot.trim.strategies import remove_quietly
from bot.trim.trimmer import VideoTrimmer

router = Router()

START_SECOND = r"^\s*\d+(?:[.,]\d+)?\s*$"


def draft_dir(trimmer: VideoTrimmer, chat_id: int) -> Path:
    return Path(trimmer.settings.work_dir) / str(chat_id)


def clear_draft_files(trimmer: VideoTrimmer, chat_id: int, keep: Optional[Path] = None) -> None:
    directory = draft_dir(trimmer, chat_id)
    if keep is None:
        shutil.rmtree(directory, ignore_errors=True)
        return
    if directory.is_dir():
        for path in directory.iterdir():
            if path != keep and path.is_file():
                remove_quietly(path)


def is_current(drafts: DraftRegistry, chat_id: int, draft: UploadDraft, path: Path) -> bool:
    """False once the chat has moved on to another file or discarded the draft."""
    return drafts.get(chat_id) is draft and draft.path == path


def next_step(draft: UploadDraft) -> Tuple[str, Optional[InlineKeyboardMarkup]]:
    """What the user should do next to get the draft to ``READY_TO_SUBMIT``."""
    if draft.state == DraftState.IDLE:
        return "Send me a video to get started.", None
    if draft.state == DraftState.NEEDS_TRIM:
        total = (draft.source_duration_ms or 0) / 1000
        return (
            f"Your video is {total:.1f}s long. Clips must be 5 seconds or less.\n"
            f"Send the second where the 5-second clip should start "
            f"(0 - {draft.max_trim_start:.1f}).",
            None,
        )
    if draft.state == DraftState.TRIMMING:
        return "Trimming is in progress, please wait.", None
    if not draft.skill_category:
        return "Choose a skill category:", category_keyboard()
    if not draft.terms_accepted:
        return "Please accept the community guidelines to continue.", terms_keyboard()
    if draft.can_submit:
        category = SKILL_CATEGORIES[draft.skill_category]
        return (
            f"Ready to upload: {draft.duration_ms / 1000:.1f}s, {category}.\n"
            f"Use /describe &lt;text&gt; to add a description.",
            submit_keyboard(),
        )
    return "Missing: " + ", ".join(draft.missing_for_submit()), None


class ProgressMessage:
    """Edits one status message as trim progress comes in, in order and throttled."""

    def __init__(self, message: Message, step: int = 10):
        self.message = message
        self.step = step
        self.last = -step
        self._lock = asyncio.Lock()
        self._tasks = set()

    def __call__(self, update: TrimProgress) -> None:
        if update.progress < 100 and update.progress - self.last < self.step:
            return
        self.last = update.progress
        task = asyncio.create_task(self._edit(f"{update.message} {update.progress}%"))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _edit(self, text: str) -> None:
        async with self._lock:
            try:
                await self.message.edit_text(text)
            except TelegramBadRequest as e:
                logger.debug(f"Progress edit skipped: {e}")

    async def flush(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


@router.message(F.video | F.document)
async def handle_video(message: Message, drafts: DraftRegistry, trimmer: VideoTrimmer):
    chat_id = message.chat.id
    draft = drafts.get(chat_id)
    if draft.is_trimming:
        await message.answer("Please wait until the current trim finishes.")
        return

    media = message.video or message.document
    original_name = getattr(media, "file_name", None) or f"{media.file_unique_id}.mp4"
    target_dir = draft_dir(trimmer, chat_id)
    target = target_dir / f"{uuid.uuid4().hex}{Path(original_name).suffix.lower() or '.mp4'}"

    try:
        draft.select_file(target, original_name, media.mime_type, media.file_size or 0)
    except DraftValidationError as e:
        await message.answer(str(e))
        return

    logger.info(f"Chat {chat_id} selected {original_name} ({media.file_size} bytes)")

    target_dir.mkdir(parents=True, exist_ok=True)
    clear_draft_files(trimmer, chat_id, keep=target)
    try:
        await message.bot.download(media, destination=target)
        duration_ms = await probe_duration_ms(target)
    except (ValueError, OSError, TelegramBadRequest) as e:
        if not is_current(drafts, chat_id, draft, target):
            logger.info(f"Chat {chat_id} dropped {original_name}, a newer selection replaced it")
            remove_quietly(target)
            return
        draft.reset()
        remove_quietly(target)
        if isinstance(e, TelegramBadRequest):
            logger.error(f"Could not download file for chat {chat_id}: {e}")
            await message.answer("Could not download that file. Telegram bots can only fetch files up to 20MB.")
        else:
            await message.answer(f"{html.escape(str(e))}. Please send another video.")
        return

    if not is_current(drafts, chat_id, draft, target):
        logger.info(f"Chat {chat_id} dropped {original_name}, a newer selection replaced it")
        remove_quietly(target)
        return

    try:
        draft.record_duration(duration_ms)
    except DraftValidationError as e:
        draft.reset()
        remove_quietly(target)
        await message.answer(f"{html.escape(str(e))}. Please send another video.")
        return

    text, markup = next_step(draft)
    await message.answer(f"Duration: {duration_ms / 1000:.1f}s\n{text}", reply_markup=markup)


@router.message(F.text.regexp(START_SECOND))
async def handle_trim_start(message: Message, drafts: DraftRegistry, trimmer: VideoTrimmer):
    chat_id = message.chat.id
    draft = drafts.get(chat_id)
    if draft.state != DraftState.NEEDS_TRIM:
        text, markup = next_step(draft)
        await message.answer(text, reply_markup=markup)
        return

    try:
        window = draft.choose_window(float(message.text.strip().replace(",", ".")))
        draft.begin_trim()
    except (DraftValidationError, DraftStateError) as e:
        await message.answer(str(e))
        return

    status = await message.answer(f"Trimming {window.start:.1f}s - {window.end:.1f}s...")
    progress = ProgressMessage(status)
    logger.info(f"Chat {chat_id} trimming [{window.start}, {window.end})")

    try:
        trimmed = await trimmer.trim(draft.path, window, progress)
    except TrimError as e:
        draft.fail_trim(e)
        await progress.flush()
        await message.answer(f"{e}\nSend a start second (0 - {draft.max_trim_start:.1f}) to retry.")
        return
    except Exception as e:
        draft.fail_trim(e)
        logger.exception(f"Unexpected trim failure for chat {chat_id}: {e}")
        await progress.flush()
        await message.answer("Trimming failed unexpectedly. Send a start second to retry.")
        return

    draft.complete_trim(trimmed)
    await progress.flush()
    text, markup = next_step(draft)
    await message.answer(f"Trimmed to 5.0s.\n{text}", reply_markup=markup)


@router.callback_query(F.data.startswith("category:"))
async def handle_category(callback: CallbackQuery, drafts: DraftRegistry):
    draft = drafts.get(callback.message.chat.id)
    try:
        draft.set_category(callback.data.split(":", 1)[1])
    except (DraftValidationError, DraftStateError) as e:
        await callback.answer(str(e), show_alert=True)
        return

    await callback.answer(f"Category: {SKILL_CATEGORIES[draft.skill_category]}")
    text, markup = next_step(draft)
    await callback.message.answer(text, reply_markup=markup)


@router.callback_query(F.data == "terms:accept")
async def handle_terms(callback: CallbackQuery, drafts: DraftRegistry):
    draft = drafts.get(callback.message.chat.id)
    try:
        draft.accept_terms()
    except DraftStateError as e:
        await callback.answer(str(e), show_alert=True)
        return

    await callback.answer("Thanks!")
    text, markup = next_step(draft)
    await callback.message.answer(text, reply_markup=markup)


@router.message(Command("describe"))
async def cmd_describe(message: Message, command: CommandObject, drafts: DraftRegistry):
    draft = drafts.get(message.chat.id)
    try:
        draft.set_description(command.args)
    except DraftStateError as e:
        await message.answer(str(e))
        return
    await message.answer("Description saved." if draft.description else "Description cleared.")


@router.callback_query(F.data == "submit")
async def handle_submit(
    callback: CallbackQuery,
    api_client: APIClient,
    drafts: DraftRegistry,
    trimmer: VideoTrimmer,
):
    chat_id = callback.message.chat.id
    draft = drafts.get(chat_id)
    if not draft.can_submit:
        await callback.answer("Missing: " + ", ".join(draft.missing_for_submit()), show_alert=True)
        return

    await callback.answer("Uploading...")
    try:
        video = await api_client.upload_video(
            telegram_chat_id=chat_id,
            path=draft.path,
            original_name=draft.original_name,
            mime_type=draft.mime_type,
            skill_category=draft.skill_category,
            duration_ms=draft.duration_ms,
            description=draft.description,
        )
    except APIError as e:
        await callback.message.answer(f"Upload failed: {html.escape(str(e))}")
        return

    logger.info(f"Chat {chat_id} uploaded video {video.get('id')}")
    drafts.discard(chat_id)
    clear_draft_files(trimmer, chat_id)
    await callback.message.answer("Video uploaded! Your skill is now live in the /feed.")


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, drafts: DraftRegistry, trimmer: VideoTrimmer):
    await _cancel(message.chat.id, message, drafts, trimmer)


@router.callback_query(F.data == "cancel")
async def handle_cancel(callback: CallbackQuery, drafts: DraftRegistry, trimmer: VideoTrimmer):
    await callback.answer()
    await _cancel(callback.message.chat.id, callback.message, drafts, trimmer)


async def _cancel(chat_id: int, message: Message, drafts: DraftRegistry, trimmer: VideoTrimmer):
    try:
        drafts.discard(chat_id)
    except DraftStateError as e:
        await message.answer(str(e))
        return
    clear_draft_files(trimmer, chat_id)
    await message.answer("Draft discarded.")
