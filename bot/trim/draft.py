from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from bot.trim.errors import DraftStateError, DraftValidationError
from bot.trim.window import MAX_DURATION_MS, TrimWindow, max_start, needs_trim

ALLOWED_MIME_TYPES = ("video/mp4", "video/quicktime", "video/x-msvideo")
MAX_FILE_BYTES = 50 * 1024 * 1024

SKILL_CATEGORIES = {
    "pen-spinning": "Pen Spinning",
    "bottle-flip": "Bottle Flip",
    "coin-tricks": "Coin Tricks",
    "card-tricks": "Card Tricks",
    "skateboard": "Skateboard Tricks",
    "juggling": "Juggling",
    "yo-yo": "Yo-yo Tricks",
    "other": "Other",
}


class DraftState(str, Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    DURATION_OK = "duration_ok"
    NEEDS_TRIM = "needs_trim"
    TRIMMING = "trimming"
    TRIMMED = "trimmed"
    READY_TO_SUBMIT = "ready_to_submit"


# states where the working file is known to be short enough
_CLIP_READY = (DraftState.DURATION_OK, DraftState.TRIMMED, DraftState.READY_TO_SUBMIT)


class UploadDraft:
    """One chat's clip on its way to an upload.

    ``IDLE -> FILE_SELECTED -> DURATION_OK | NEEDS_TRIM``; a long clip goes
    ``NEEDS_TRIM -> TRIMMING -> TRIMMED`` (or back to ``NEEDS_TRIM`` when the
    trim fails). Once the clip fits and a category is chosen and the terms are
    accepted, the draft is ``READY_TO_SUBMIT``. Only one trim can run at a time
    and nothing else may change the draft while it does.
    """

    def __init__(self):
        self.state = DraftState.IDLE
        self.path: Optional[Path] = None
        self.original_name: Optional[str] = None
        self.mime_type: Optional[str] = None
        self.size: Optional[int] = None
        self.duration_ms: Optional[int] = None
        self.source_duration_ms: Optional[int] = None
        self.window: Optional[TrimWindow] = None
        self.skill_category: Optional[str] = None
        self.description: Optional[str] = None
        self.terms_accepted = False
        self.last_error: Optional[str] = None

    @property
    def is_trimming(self) -> bool:
        return self.state == DraftState.TRIMMING

    @property
    def max_trim_start(self) -> float:
        return max_start((self.source_duration_ms or 0) / 1000)

    def _require(self, *states: DraftState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise DraftStateError(f"Cannot do that while {self.state.value} (expected {allowed})")

    def _guard_not_trimming(self) -> None:
        if self.is_trimming:
            raise DraftStateError("A trim is already in progress")

    def select_file(self, path: Path, original_name: str, mime_type: Optional[str], size: int) -> None:
        self._guard_not_trimming()
        if mime_type not in ALLOWED_MIME_TYPES:
            raise DraftValidationError("Please send an MP4, MOV, or AVI file.")
        if size > MAX_FILE_BYTES:
            raise DraftValidationError("Please send a file smaller than 50MB.")

        self.reset()
        self.path = Path(path)
        self.original_name = original_name
        self.mime_type = mime_type
        self.size = size
        self.state = DraftState.FILE_SELECTED

    def record_duration(self, duration_ms: int) -> DraftState:
        self._require(DraftState.FILE_SELECTED)
        if duration_ms <= 0:
            raise DraftValidationError("Could not read the video duration")

        self.source_duration_ms = duration_ms
        if needs_trim(duration_ms):
            self.duration_ms = None
            self.state = DraftState.NEEDS_TRIM
        else:
            self.duration_ms = duration_ms
            self.state = DraftState.DURATION_OK
        self._refresh_ready()
        return self.state

    def choose_window(self, start_seconds: float) -> TrimWindow:
        self._require(DraftState.NEEDS_TRIM)
        try:
            self.window = TrimWindow.select(start_seconds, self.source_duration_ms / 1000)
        except ValueError as e:
            raise DraftValidationError(str(e)) from e
        return self.window

    def begin_trim(self) -> TrimWindow:
        self._require(DraftState.NEEDS_TRIM)
        if self.window is None:
            raise DraftStateError("Choose where the 5-second clip starts first")
        self.last_error = None
        self.state = DraftState.TRIMMING
        return self.window

    def complete_trim(self, trimmed_path: Path) -> None:
        self._require(DraftState.TRIMMING)
        self.path = Path(trimmed_path)
        self.mime_type = "video/mp4"
        self.original_name = f"{Path(self.original_name or 'clip').stem}_trimmed.mp4"
        self.size = self.path.stat().st_size if self.path.exists() else self.size
        # the window is exactly five seconds long, no need to probe again
        self.duration_ms = MAX_DURATION_MS
        self.state = DraftState.TRIMMED
        self._refresh_ready()

    def fail_trim(self, error: Exception) -> None:
        self._require(DraftState.TRIMMING)
        self.last_error = str(error)
        self.state = DraftState.NEEDS_TRIM
        logger.info(f"Trim failed, draft back to needs_trim: {error}")

    def set_category(self, skill_category: str) -> None:
        self._guard_not_trimming()
        if skill_category not in SKILL_CATEGORIES:
            raise DraftValidationError(f"Unknown category: {skill_category}")
        self.skill_category = skill_category
        self._refresh_ready()

    def set_description(self, description: Optional[str]) -> None:
        self._guard_not_trimming()
        self.description = (description or "").strip() or None

    def accept_terms(self, accepted: bool = True) -> None:
        self._guard_not_trimming()
        self.terms_accepted = accepted
        self._refresh_ready()

    @property
    def can_submit(self) -> bool:
        return (
            self.path is not None
            and self.duration_ms is not None
            and 0 < self.duration_ms <= MAX_DURATION_MS
            and self.state in _CLIP_READY
            and bool(self.skill_category)
            and self.terms_accepted
        )

    def missing_for_submit(self) -> list:
        missing = []
        if self.path is None:
            missing.append("a video")
        elif self.state not in _CLIP_READY:
            missing.append("a clip of 5 seconds or less")
        if not self.skill_category:
            missing.append("a category")
        if not self.terms_accepted:
            missing.append("accepting the community guidelines")
        return missing

    def _refresh_ready(self) -> None:
        if self.state in _CLIP_READY:
            self.state = DraftState.READY_TO_SUBMIT if self.can_submit else self._clip_state()

    def _clip_state(self) -> DraftState:
        if self.state == DraftState.READY_TO_SUBMIT:
            return DraftState.TRIMMED if self.window is not None else DraftState.DURATION_OK
        return self.state

    def reset(self) -> None:
        self._guard_not_trimming()
        self.__init__()


class DraftRegistry:
    def __init__(self):
        self._drafts: Dict[int, UploadDraft] = {}

    def get(self, chat_id: int) -> UploadDraft:
        draft = self._drafts.get(chat_id)
        if draft is None:
            draft = self._drafts[chat_id] = UploadDraft()
        return draft

    def discard(self, chat_id: int) -> None:
        draft = self._drafts.pop(chat_id, None)
        if draft is not None and draft.is_trimming:
            self._drafts[chat_id] = draft
            raise DraftStateError("A trim is already in progress")
