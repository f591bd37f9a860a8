import asyncio
from html.parser import HTMLParser
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from bot.clients.api_client import APIError
from bot.handlers import upload
from bot.handlers.start import HELP_TEXT
from bot.trim.draft import DraftRegistry, DraftState, UploadDraft
from bot.trim.errors import TrimError
from bot.trim.progress import TrimProgress
from bot.trim.window import TrimWindow

CHAT_ID = 1

TELEGRAM_TAGS = {
    "b", "strong", "i", "em", "u", "ins", "s", "strike", "del", "span",
    "tg-spoiler", "a", "tg-emoji", "code", "pre", "blockquote",
}


class TagCollector(HTMLParser):

    def __init__(self):
        super().__init__()
        self.tags = []

    def handle_starttag(self, tag, attrs):
        self.tags.append(tag)


def assert_telegram_html(text):
    parser = TagCollector()
    parser.feed(text)
    assert [tag for tag in parser.tags if tag not in TELEGRAM_TAGS] == []


def sent_texts(mock):
    return [call.args[0] for call in mock.await_args_list]


def make_message(text=None, video=None):
    message = MagicMock()
    message.chat.id = CHAT_ID
    message.text = text
    message.video = video
    message.document = None
    status = MagicMock()
    status.edit_text = AsyncMock()
    message.answer = AsyncMock(return_value=status)
    message.status = status

    async def download(media, destination):
        Path(destination).write_bytes(b"\x00" * 16)

    message.bot.download = AsyncMock(side_effect=download)
    return message


def make_callback(data):
    callback = MagicMock()
    callback.data = data
    callback.message.chat.id = CHAT_ID
    callback.answer = AsyncMock()
    callback.message.answer = AsyncMock()
    return callback


def make_video(name="long.mp4", mime_type="video/mp4", size=1024):
    return SimpleNamespace(file_name=name, file_unique_id="u1", mime_type=mime_type, file_size=size)


@pytest.fixture
def trimmer(tmp_path):
    return SimpleNamespace(settings=SimpleNamespace(work_dir=str(tmp_path / "drafts")), trim=AsyncMock())


@pytest.fixture
def drafts():
    return DraftRegistry()


@pytest.fixture
def read_duration(monkeypatch):
    mock = AsyncMock(return_value=12000)
    monkeypatch.setattr(upload, "probe_duration_ms", mock)
    return mock


def _source(trimmer, name="source.mp4"):
    directory = upload.draft_dir(trimmer, CHAT_ID)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_bytes(b"\x00" * 64)
    return path


def _needs_trim(drafts, trimmer):
    draft = drafts.get(CHAT_ID)
    draft.select_file(_source(trimmer), "source.mp4", "video/mp4", 64)
    draft.record_duration(12000)
    return draft


def _ready(drafts, trimmer):
    draft = drafts.get(CHAT_ID)
    draft.select_file(_source(trimmer), "source.mp4", "video/mp4", 64)
    draft.record_duration(3000)
    draft.set_category("juggling")
    draft.accept_terms()
    return draft


def _cut(source, window, on_progress):
    output = source.with_name(f"{source.stem}_cut.mp4")
    output.write_bytes(b"\x00" * 32)
    return output


class TestMessageMarkup:

    def test_help_text(self):
        assert_telegram_html(HELP_TEXT)
        assert "/describe &lt;text&gt;" in HELP_TEXT

    def test_every_dialogue_step(self, tmp_path):
        draft = UploadDraft()
        texts = [upload.next_step(draft)[0]]

        draft.select_file(tmp_path / "a.mp4", "a.mp4", "video/mp4", 10)
        draft.record_duration(12000)
        texts.append(upload.next_step(draft)[0])

        draft.choose_window(1.0)
        draft.begin_trim()
        texts.append(upload.next_step(draft)[0])

        draft.fail_trim(TrimError("boom"))
        draft.reset()
        draft.select_file(tmp_path / "b.mp4", "b.mp4", "video/mp4", 10)
        draft.record_duration(4000)
        texts.append(upload.next_step(draft)[0])
        draft.set_category("juggling")
        texts.append(upload.next_step(draft)[0])
        draft.accept_terms()
        texts.append(upload.next_step(draft)[0])

        assert texts[-1].startswith("Ready to upload: 4.0s, Juggling.")
        for text in texts:
            assert_telegram_html(text)


@pytest.mark.asyncio
class TestHandleVideo:

    async def test_long_clip_asks_for_start(self, drafts, trimmer, read_duration):
        message = make_message(video=make_video())

        await upload.handle_video(message, drafts, trimmer)

        draft = drafts.get(CHAT_ID)
        assert draft.state == DraftState.NEEDS_TRIM
        assert draft.path.exists()
        [text] = sent_texts(message.answer)
        assert text.startswith("Duration: 12.0s\nYour video is 12.0s long.")
        assert "(0 - 7.0)" in text

    async def test_short_clip_goes_to_category(self, drafts, trimmer, read_duration):
        read_duration.return_value = 4200
        message = make_message(video=make_video("short.mov", "video/quicktime"))

        await upload.handle_video(message, drafts, trimmer)

        assert drafts.get(CHAT_ID).state == DraftState.DURATION_OK
        assert message.answer.await_args.args[0] == "Duration: 4.2s\nChoose a skill category:"
        assert message.answer.await_args.kwargs["reply_markup"] is not None

    async def test_rejects_unsupported_type(self, drafts, trimmer, read_duration):
        message = make_message(video=make_video("clip.webm", "video/webm"))

        await upload.handle_video(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Please send an MP4, MOV, or AVI file."]
        assert drafts.get(CHAT_ID).state == DraftState.IDLE
        message.bot.download.assert_not_awaited()

    async def test_unreadable_duration(self, drafts, trimmer, read_duration):
        read_duration.side_effect = ValueError("Could not read the video duration")
        message = make_message(video=make_video())

        await upload.handle_video(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Could not read the video duration. Please send another video."]
        assert drafts.get(CHAT_ID).state == DraftState.IDLE
        assert list(upload.draft_dir(trimmer, CHAT_ID).iterdir()) == []

    async def test_refused_while_trimming(self, drafts, trimmer, read_duration):
        draft = _needs_trim(drafts, trimmer)
        draft.choose_window(0)
        draft.begin_trim()
        message = make_message(video=make_video())

        await upload.handle_video(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Please wait until the current trim finishes."]
        assert draft.is_trimming
        read_duration.assert_not_awaited()

    async def test_newer_file_survives_failed_older_download(self, drafts, trimmer, read_duration):
        release = asyncio.Event()
        first = make_message(video=make_video("first.mp4"))
        second = make_message(video=make_video("second.mp4"))

        async def slow_download(media, destination):
            await release.wait()
            Path(destination).write_bytes(b"\x00")

        first.bot.download = AsyncMock(side_effect=slow_download)
        read_duration.side_effect = [3000, ValueError("Could not read the video duration")]

        pending = asyncio.create_task(upload.handle_video(first, drafts, trimmer))
        await asyncio.sleep(0)
        await upload.handle_video(second, drafts, trimmer)
        release.set()
        await pending

        draft = drafts.get(CHAT_ID)
        assert draft.state == DraftState.DURATION_OK
        assert draft.original_name == "second.mp4"
        assert draft.path.exists()
        assert list(upload.draft_dir(trimmer, CHAT_ID).iterdir()) == [draft.path]
        first.answer.assert_not_awaited()


@pytest.mark.asyncio
class TestHandleTrimStart:

    async def test_trims_and_reports_progress(self, drafts, trimmer):
        draft = _needs_trim(drafts, trimmer)

        async def trim(source, window, on_progress):
            on_progress(TrimProgress(50, "Recording video segment..."))
            return _cut(source, window, on_progress)

        trimmer.trim.side_effect = trim
        message = make_message(text="2")

        await upload.handle_trim_start(message, drafts, trimmer)

        assert trimmer.trim.await_args.args[1] == TrimWindow(2.0)
        assert draft.state == DraftState.TRIMMED
        assert draft.duration_ms == 5000
        texts = sent_texts(message.answer)
        assert texts[0] == "Trimming 2.0s - 7.0s..."
        assert texts[-1] == "Trimmed to 5.0s.\nChoose a skill category:"
        message.status.edit_text.assert_awaited_with("Recording video segment... 50%")

    async def test_failure_returns_to_needs_trim(self, drafts, trimmer):
        draft = _needs_trim(drafts, trimmer)
        trimmer.trim.side_effect = TrimError("Could not trim the video. Pick the start again to retry.")
        message = make_message(text="1,5")

        await upload.handle_trim_start(message, drafts, trimmer)

        assert draft.state == DraftState.NEEDS_TRIM
        assert sent_texts(message.answer)[-1] == (
            "Could not trim the video. Pick the start again to retry.\n"
            "Send a start second (0 - 7.0) to retry."
        )

        trimmer.trim.side_effect = _cut
        await upload.handle_trim_start(make_message(text="3"), drafts, trimmer)

        assert draft.state == DraftState.TRIMMED
        assert draft.window == TrimWindow(3.0)

    async def test_out_of_range_start(self, drafts, trimmer):
        draft = _needs_trim(drafts, trimmer)
        message = make_message(text="9")

        await upload.handle_trim_start(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Start must be between 0 and 7.0 seconds"]
        assert draft.state == DraftState.NEEDS_TRIM
        trimmer.trim.assert_not_awaited()

    async def test_number_without_long_clip(self, drafts, trimmer):
        message = make_message(text="2")

        await upload.handle_trim_start(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Send me a video to get started."]

    async def test_draft_locked_while_trimming(self, drafts, trimmer, read_duration):
        draft = _needs_trim(drafts, trimmer)
        release = asyncio.Event()

        async def trim(source, window, on_progress):
            await release.wait()
            return _cut(source, window, on_progress)

        trimmer.trim.side_effect = trim
        pending = asyncio.create_task(upload.handle_trim_start(make_message(text="0"), drafts, trimmer))
        await asyncio.sleep(0)
        assert draft.is_trimming

        category = make_callback("category:juggling")
        await upload.handle_category(category, drafts)
        category.answer.assert_awaited_once_with("A trim is already in progress", show_alert=True)

        cancel = make_message(text="/cancel")
        await upload.cmd_cancel(cancel, drafts, trimmer)
        assert sent_texts(cancel.answer) == ["A trim is already in progress"]

        submit = make_callback("submit")
        api_client = AsyncMock()
        await upload.handle_submit(submit, api_client, drafts, trimmer)
        api_client.upload_video.assert_not_awaited()

        release.set()
        await pending
        assert draft.state == DraftState.TRIMMED
        assert drafts.get(CHAT_ID) is draft


@pytest.mark.asyncio
class TestDraftCallbacks:

    async def test_category_then_terms_offers_submit(self, drafts, trimmer):
        draft = drafts.get(CHAT_ID)
        draft.select_file(_source(trimmer), "source.mp4", "video/mp4", 64)
        draft.record_duration(4000)

        category = make_callback("category:juggling")
        await upload.handle_category(category, drafts)

        category.answer.assert_awaited_once_with("Category: Juggling")
        assert category.message.answer.await_args.args[0] == "Please accept the community guidelines to continue."

        terms = make_callback("terms:accept")
        await upload.handle_terms(terms, drafts)

        text = terms.message.answer.await_args.args[0]
        markup = terms.message.answer.await_args.kwargs["reply_markup"]
        assert text.startswith("Ready to upload: 4.0s, Juggling.")
        assert_telegram_html(text)
        assert [b.callback_data for b in markup.inline_keyboard[0]] == ["submit", "cancel"]
        assert draft.state == DraftState.READY_TO_SUBMIT

    async def test_unknown_category(self, drafts):
        callback = make_callback("category:knitting")

        await upload.handle_category(callback, drafts)

        callback.answer.assert_awaited_once_with("Unknown category: knitting", show_alert=True)

    async def test_describe(self, drafts):
        message = make_message(text="/describe three balls")

        await upload.cmd_describe(message, SimpleNamespace(args="three balls"), drafts)

        assert drafts.get(CHAT_ID).description == "three balls"
        assert sent_texts(message.answer) == ["Description saved."]


@pytest.mark.asyncio
class TestSubmitAndCancel:

    async def test_submit_uploads_and_clears(self, drafts, trimmer):
        draft = _ready(drafts, trimmer)
        api_client = AsyncMock()
        api_client.upload_video.return_value = {"id": "v1"}
        callback = make_callback("submit")

        await upload.handle_submit(callback, api_client, drafts, trimmer)

        api_client.upload_video.assert_awaited_once_with(
            telegram_chat_id=CHAT_ID,
            path=draft.path,
            original_name="source.mp4",
            mime_type="video/mp4",
            skill_category="juggling",
            duration_ms=3000,
            description=None,
        )
        assert drafts.get(CHAT_ID) is not draft
        assert not upload.draft_dir(trimmer, CHAT_ID).exists()
        assert sent_texts(callback.message.answer) == ["Video uploaded! Your skill is now live in the /feed."]

    async def test_submit_needs_ready_draft(self, drafts, trimmer):
        draft = drafts.get(CHAT_ID)
        draft.select_file(_source(trimmer), "source.mp4", "video/mp4", 64)
        draft.record_duration(3000)
        api_client = AsyncMock()
        callback = make_callback("submit")

        await upload.handle_submit(callback, api_client, drafts, trimmer)

        callback.answer.assert_awaited_once_with(
            "Missing: a category, accepting the community guidelines", show_alert=True
        )
        api_client.upload_video.assert_not_awaited()

    async def test_submit_error_keeps_draft(self, drafts, trimmer):
        draft = _ready(drafts, trimmer)
        api_client = AsyncMock()
        api_client.upload_video.side_effect = APIError("Duration must be <= 5000", 400)
        callback = make_callback("submit")

        await upload.handle_submit(callback, api_client, drafts, trimmer)

        [text] = sent_texts(callback.message.answer)
        assert text == "Upload failed: Duration must be &lt;= 5000"
        assert drafts.get(CHAT_ID) is draft
        assert draft.path.exists()

    async def test_cancel_discards_draft_and_files(self, drafts, trimmer):
        draft = _ready(drafts, trimmer)
        message = make_message(text="/cancel")

        await upload.cmd_cancel(message, drafts, trimmer)

        assert sent_texts(message.answer) == ["Draft discarded."]
        assert drafts.get(CHAT_ID) is not draft
        assert not upload.draft_dir(trimmer, CHAT_ID).exists()


@pytest.mark.asyncio
class TestProgressMessage:

    async def test_throttles_and_keeps_order(self):
        status = MagicMock()
        status.edit_text = AsyncMock()
        progress = upload.ProgressMessage(status, step=10)

        for value in (5, 8, 20, 25, 100):
            progress(TrimProgress(value, "Cutting"))
        await progress.flush()

        assert sent_texts(status.edit_text) == ["Cutting 5%", "Cutting 20%", "Cutting 100%"]
