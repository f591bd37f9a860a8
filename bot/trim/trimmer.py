import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from bot.core.config import TrimSettings
from bot.trim.errors import TrimError
from bot.trim.progress import ProgressCallback, ProgressTracker
from bot.trim.strategies import FfmpegTrimStrategy, FrameCaptureStrategy, remove_quietly
from bot.trim.window import TrimWindow


class VideoTrimmer:
    """Cuts a fixed window out of a clip, ffmpeg first and frame capture second.

    The ffmpeg attempt races a timeout. When the timeout wins, ``wait_for``
    cancels it, which kills the subprocess and throws away whatever it wrote,
    and the frame-capture fallback starts.
    """

    def __init__(
        self,
        settings: Optional[TrimSettings] = None,
        fast=None,
        fallback=None,
    ):
        self.settings = settings or TrimSettings()
        self.fast = fast or FfmpegTrimStrategy(self.settings.ffmpeg_binary)
        self.fallback = fallback or FrameCaptureStrategy(
            fallback_fps=self.settings.fallback_fps,
            max_frame_size=self.settings.max_frame_size,
        )

    async def trim(
        self,
        source: Path,
        window: TrimWindow,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        tracker = ProgressTracker(on_progress)
        tracker.report(5, "Initializing video processor...")

        stem = f"{source.stem}_{int(window.start * 1000)}"
        fast_output = source.with_name(f"{stem}_cut.mp4")
        try:
            result = await asyncio.wait_for(
                self.fast.trim(source, window, fast_output, tracker.scaled(5, 100)),
                timeout=self.settings.fast_path_timeout,
            )
            logger.info(f"Trimmed {source.name} with {self.fast.name}")
            return result
        except asyncio.TimeoutError:
            logger.warning(
                f"{self.fast.name} did not finish within {self.settings.fast_path_timeout}s, "
                f"falling back to {self.fallback.name}"
            )
        except (TrimError, OSError) as e:
            logger.warning(f"{self.fast.name} failed for {source.name}: {e}")
        remove_quietly(fast_output)

        tracker.report(tracker.progress, "Using frame capture fallback...")
        capture_output = source.with_name(f"{stem}_capture.mp4")
        try:
            result = await self.fallback.trim(
                source, window, capture_output, tracker.scaled(tracker.progress, 100)
            )
        except (TrimError, OSError) as e:
            remove_quietly(capture_output)
            logger.error(f"All trim strategies failed for {source.name}: {e}")
            raise TrimError("Could not trim the video. Pick the start again to retry.") from e

        logger.info(f"Trimmed {source.name} with {self.fallback.name}")
        return result
