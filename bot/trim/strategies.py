import asyncio
import threading
from pathlib import Path
from typing import List, Protocol, Tuple

import cv2
import ffmpeg
from loguru import logger

from bot.trim.errors import TrimError
from bot.trim.window import TrimWindow


class ProgressSink(Protocol):
    def report(self, progress: float, message: str) -> None: ...


def remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class FfmpegTrimStrategy:
    """Cuts the window with the ffmpeg binary.

    A stream copy is tried first since it only remuxes. If ffmpeg rejects it,
    for example because the codecs cannot go into MP4, the window is
    re-encoded with the ultrafast x264 preset.
    """

    name = "ffmpeg"

    def __init__(self, ffmpeg_binary: str = "ffmpeg"):
        self.ffmpeg_binary = ffmpeg_binary

    def build_copy_command(self, source: Path, window: TrimWindow, output: Path) -> List[str]:
        return (
            ffmpeg
            .input(str(source), ss=window.start, t=window.length)
            .output(str(output), c="copy", movflags="+faststart", avoid_negative_ts="make_zero")
            .overwrite_output()
            .compile(cmd=self.ffmpeg_binary)
        )

    def build_encode_command(self, source: Path, window: TrimWindow, output: Path) -> List[str]:
        return (
            ffmpeg
            .input(str(source), ss=window.start, t=window.length)
            .output(
                str(output),
                vcodec="libx264",
                acodec="aac",
                preset="ultrafast",
                crf=23,
                movflags="+faststart",
            )
            .overwrite_output()
            .compile(cmd=self.ffmpeg_binary)
        )

    async def trim(self, source: Path, window: TrimWindow, output: Path, progress: ProgressSink) -> Path:
        progress.report(10, "Cutting clip without re-encoding...")
        try:
            await self._run(self.build_copy_command(source, window, output), output)
            progress.report(100, "Complete!")
            return output
        except TrimError as e:
            logger.info(f"Stream copy failed for {source.name}, re-encoding: {e}")
            remove_quietly(output)

        progress.report(40, "Re-encoding clip...")
        await self._run(self.build_encode_command(source, window, output), output)
        progress.report(100, "Complete!")
        return output

    async def _run(self, command: List[str], output: Path) -> None:
        logger.debug(f"Running {' '.join(command)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TrimError(f"ffmpeg could not be started: {e}") from e

        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            remove_quietly(output)
            raise

        if process.returncode != 0:
            tail = stderr.decode(errors="ignore").strip().splitlines()[-3:] if stderr else []
            raise TrimError(f"ffmpeg exited with {process.returncode}: {' | '.join(tail)}")

        if not output.exists() or output.stat().st_size == 0:
            raise TrimError("ffmpeg produced no output")


def fit_within(width: int, height: int, max_size: int) -> Tuple[int, int]:
    if width <= max_size and height <= max_size:
        return width, height
    if width >= height:
        return max_size, max(2, int(max_size * height / width))
    return max(2, int(max_size * width / height)), max_size


class FrameCaptureStrategy:
    """Re-records the window frame by frame with OpenCV.

    Recording stops once the source position reaches the window end or after
    ``length * fps`` frames, whichever comes first. OpenCV does not read or
    write audio, so the resulting clip is silent.
    """

    name = "frame-capture"

    def __init__(self, fallback_fps: float = 30.0, max_frame_size: int = 1920):
        self.fallback_fps = fallback_fps
        self.max_frame_size = max_frame_size

    async def trim(self, source: Path, window: TrimWindow, output: Path, progress: ProgressSink) -> Path:
        loop = asyncio.get_running_loop()
        cancelled = threading.Event()

        def report(value: float, message: str) -> None:
            loop.call_soon_threadsafe(progress.report, value, message)

        progress.report(5, "Setting up video capture...")
        try:
            frames = await asyncio.to_thread(self.capture, source, window, output, report, cancelled)
        except asyncio.CancelledError:
            cancelled.set()
            remove_quietly(output)
            raise
        except TrimError:
            remove_quietly(output)
            raise

        logger.info(f"Captured {frames} frames from {source.name} [{window.start}, {window.end})")
        progress.report(100, "Complete!")
        return output

    def capture(self, source: Path, window: TrimWindow, output: Path, report, cancelled: threading.Event) -> int:
        cap = cv2.VideoCapture(str(source))
        if not cap.isOpened():
            raise TrimError("Video loading failed")

        try:
            fps = cap.get(cv2.CAP_PROP_FPS) or self.fallback_fps
            width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            if width == 0 or height == 0:
                raise TrimError("Invalid video dimensions")

            size = fit_within(width, height, self.max_frame_size)
            cap.set(cv2.CAP_PROP_POS_MSEC, window.start * 1000)

            writer = cv2.VideoWriter(str(output), cv2.VideoWriter_fourcc(*"mp4v"), fps, size)
            if not writer.isOpened():
                raise TrimError("No supported video format available")

            frame_budget = max(1, int(round(window.length * fps)))
            end_ms = window.end * 1000
            frames = 0
            report(10, "Recording video segment...")
            try:
                while frames < frame_budget and not cancelled.is_set():
                    if cap.get(cv2.CAP_PROP_POS_MSEC) >= end_ms:
                        break
                    ok, frame = cap.read()
                    if not ok:
                        break
                    if size != (width, height):
                        frame = cv2.resize(frame, size)
                    writer.write(frame)
                    frames += 1
                    report(10 + 80 * frames / frame_budget, "Recording video segment...")
            finally:
                writer.release()
        finally:
            cap.release()

        if cancelled.is_set():
            raise TrimError("Frame capture cancelled")
        if frames == 0:
            raise TrimError("No frames could be captured from the selected window")

        report(95, "Finalizing video...")
        return frames
