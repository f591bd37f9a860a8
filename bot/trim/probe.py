import asyncio
from pathlib import Path

import ffmpeg
from loguru import logger


def probe_duration_seconds(video_path: str) -> float:
    """Container duration, falling back to the first video stream's duration."""
    probe = ffmpeg.probe(str(video_path))
    fmt = probe.get("format", {})
    duration = float(fmt.get("duration", 0.0) or 0.0)
    if duration <= 0:
        for stream in probe.get("streams", []):
            if stream.get("codec_type") == "video":
                duration = float(stream.get("duration", 0.0) or 0.0)
                if duration > 0:
                    break
    return duration


async def probe_duration_ms(video_path: Path) -> int:
    try:
        seconds = await asyncio.to_thread(probe_duration_seconds, str(video_path))
    except (ffmpeg.Error, OSError) as e:
        stderr = e.stderr.decode(errors="ignore") if getattr(e, "stderr", None) else str(e)
        logger.error(f"Could not probe {video_path}: {stderr}")
        raise ValueError("Could not read the video duration") from e

    if seconds <= 0:
        raise ValueError("Could not read the video duration")
    return round(seconds * 1000)
