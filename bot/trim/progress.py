from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class TrimProgress:
    progress: int
    message: str


ProgressCallback = Callable[[TrimProgress], None]


class ProgressTracker:
    """Forwards progress reports, clamped to 0-100 and never going backwards.

    Both trim strategies report into the same tracker, so a fallback that
    starts its own numbering low does not make the indicator jump back.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.progress = 0
        self.message = ""

    def report(self, progress: float, message: str) -> None:
        value = int(max(0, min(100, progress)))
        if value < self.progress:
            value = self.progress
        self.progress = value
        self.message = message
        if self.callback is not None:
            self.callback(TrimProgress(value, message))

    def scaled(self, low: float, high: float) -> "ScaledProgress":
        return ScaledProgress(self, low, high)


class ScaledProgress:
    """Maps a strategy's own 0-100 range onto ``[low, high]`` of the parent."""

    def __init__(self, parent: ProgressTracker, low: float, high: float):
        self.parent = parent
        self.low = low
        self.high = high

    def report(self, progress: float, message: str) -> None:
        fraction = max(0.0, min(100.0, progress)) / 100.0
        self.parent.report(self.low + (self.high - self.low) * fraction, message)
