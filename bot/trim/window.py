from dataclasses import dataclass

CLIP_SECONDS = 5.0
MAX_DURATION_MS = 5000


@dataclass(frozen=True)
class TrimWindow:
    """A fixed-length slice ``[start, start + length)`` of the source, in seconds."""

    start: float
    length: float = CLIP_SECONDS

    @property
    def end(self) -> float:
        return self.start + self.length

    @classmethod
    def select(cls, start: float, total_seconds: float, length: float = CLIP_SECONDS) -> "TrimWindow":
        latest = max_start(total_seconds, length)
        if start < 0 or start > latest:
            raise ValueError(f"Start must be between 0 and {latest:.1f} seconds")
        return cls(start=round(start, 3), length=length)


def max_start(total_seconds: float, length: float = CLIP_SECONDS) -> float:
    return max(0.0, total_seconds - length)


def needs_trim(duration_ms: float) -> bool:
    return duration_ms > MAX_DURATION_MS
