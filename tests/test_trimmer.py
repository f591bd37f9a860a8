import asyncio
import threading
from types import SimpleNamespace

import pytest

from bot.core.config import TrimSettings
from bot.trim import strategies
from bot.trim.errors import TrimError
from bot.trim.progress import ProgressTracker
from bot.trim.strategies import FfmpegTrimStrategy, FrameCaptureStrategy, fit_within
from bot.trim.trimmer import VideoTrimmer
from bot.trim.window import TrimWindow

WINDOW = TrimWindow(2.0)


class FakeStrategy:

    def __init__(self, name, delay=0.0, error=None):
        self.name = name
        self.delay = delay
        self.error = error
        self.calls = []
        self.cancelled = False

    async def trim(self, source, window, output, progress):
        self.calls.append((source, window, output))
        progress.report(20, f"{self.name} working")
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        progress.report(100, "Complete!")
        output.write_bytes(b"clip")
        return output


def _trimmer(tmp_path, fast, fallback, timeout=5.0):
    settings = TrimSettings(TRIM_WORK_DIR=str(tmp_path), TRIM_FAST_PATH_TIMEOUT=timeout)
    return VideoTrimmer(settings, fast=fast, fallback=fallback)


@pytest.fixture
def source(tmp_path):
    path = tmp_path / "source.mp4"
    path.write_bytes(b"\x00" * 64)
    return path


@pytest.mark.asyncio
class TestVideoTrimmer:

    async def test_fast_path(self, tmp_path, source):
        fast, fallback = FakeStrategy("fast"), FakeStrategy("fallback")
        updates = []

        result = await _trimmer(tmp_path, fast, fallback).trim(source, WINDOW, updates.append)

        assert result == tmp_path / "source_2000_cut.mp4"
        assert fallback.calls == []
        assert updates[-1].progress == 100

    async def test_timeout_cancels_fast_path_and_falls_back(self, tmp_path, source):
        fast, fallback = FakeStrategy("fast", delay=5), FakeStrategy("fallback")

        result = await _trimmer(tmp_path, fast, fallback, timeout=0.05).trim(source, WINDOW)

        assert fast.cancelled
        assert result == tmp_path / "source_2000_capture.mp4"
        assert len(fallback.calls) == 1

    async def test_fast_path_error_falls_back(self, tmp_path, source):
        fast = FakeStrategy("fast", error=TrimError("bad codec"))
        fallback = FakeStrategy("fallback")

        result = await _trimmer(tmp_path, fast, fallback).trim(source, WINDOW)

        assert result.name == "source_2000_capture.mp4"
        assert not (tmp_path / "source_2000_cut.mp4").exists()

    async def test_both_strategies_fail(self, tmp_path, source):
        fast = FakeStrategy("fast", error=TrimError("bad codec"))
        fallback = FakeStrategy("fallback", error=TrimError("no frames"))

        with pytest.raises(TrimError, match="Pick the start again"):
            await _trimmer(tmp_path, fast, fallback).trim(source, WINDOW)

        assert not (tmp_path / "source_2000_capture.mp4").exists()

    async def test_progress_never_goes_back(self, tmp_path, source):
        fast = FakeStrategy("fast", error=OSError("disk"))
        fallback = FakeStrategy("fallback")
        updates = []

        await _trimmer(tmp_path, fast, fallback).trim(source, WINDOW, updates.append)

        values = [u.progress for u in updates]
        assert values == sorted(values)
        assert values[-1] == 100
        assert all(0 <= v <= 100 for v in values)


class TestProgressTracker:

    def test_clamps_and_is_monotonic(self):
        updates = []
        tracker = ProgressTracker(updates.append)

        tracker.report(-5, "start")
        tracker.report(50, "half")
        tracker.report(30, "late")
        tracker.report(150, "over")

        assert [u.progress for u in updates] == [0, 50, 50, 100]
        assert updates[2].message == "late"

    def test_scaled_maps_onto_range(self):
        tracker = ProgressTracker()
        scaled = tracker.scaled(40, 80)

        scaled.report(50, "halfway")

        assert tracker.progress == 60


class TestFfmpegTrimStrategy:

    def test_copy_command(self, tmp_path):
        strategy = FfmpegTrimStrategy("ffmpeg-bin")

        command = strategy.build_copy_command(tmp_path / "in.mp4", WINDOW, tmp_path / "out.mp4")

        assert command[0] == "ffmpeg-bin"
        assert command[command.index("-ss") + 1] == "2.0"
        assert command[command.index("-t") + 1] == "5.0"
        assert command[command.index("-c") + 1] == "copy"
        assert command.index("-ss") < command.index("-i")
        assert "-y" in command

    def test_encode_command(self, tmp_path):
        command = FfmpegTrimStrategy().build_encode_command(tmp_path / "in.mp4", WINDOW, tmp_path / "out.mp4")

        assert command[command.index("-vcodec") + 1] == "libx264"
        assert command[command.index("-acodec") + 1] == "aac"
        assert command[command.index("-preset") + 1] == "ultrafast"
        assert str(tmp_path / "out.mp4") in command

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path, source):
        strategy = FfmpegTrimStrategy("skillclips-no-such-ffmpeg")

        with pytest.raises(TrimError, match="could not be started"):
            await strategy.trim(source, WINDOW, tmp_path / "out.mp4", ProgressTracker())

    @pytest.mark.asyncio
    async def test_failing_process(self, tmp_path):
        with pytest.raises(TrimError, match="exited with"):
            await FfmpegTrimStrategy()._run(["false"], tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_empty_output(self, tmp_path):
        with pytest.raises(TrimError, match="no output"):
            await FfmpegTrimStrategy()._run(["true"], tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_cancel_kills_process_and_removes_output(self, tmp_path):
        output = tmp_path / "out.mp4"
        output.write_bytes(b"partial")
        task = asyncio.create_task(FfmpegTrimStrategy()._run(["sleep", "30"], output))
        await asyncio.sleep(0.2)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await asyncio.wait_for(task, timeout=5)

        assert not output.exists()


def test_fit_within():
    assert fit_within(640, 480, 1920) == (640, 480)
    assert fit_within(3840, 2160, 1920) == (1920, 1080)
    assert fit_within(1080, 3840, 1920) == (540, 1920)


class FakeCapture:
    """Decodes ``total_frames`` frames, advancing the position by ``step_ms`` per frame."""

    def __init__(self, fps=10.0, step_ms=100.0, total_frames=1000, width=640, height=480, opened=True):
        self.props = {"fps": fps, "width": width, "height": height}
        self.step_ms = step_ms
        self.total_frames = total_frames
        self.opened = opened
        self.pos_ms = 0.0
        self.read_count = 0
        self.released = False

    def isOpened(self):
        return self.opened

    def get(self, prop):
        if prop == "pos":
            return self.pos_ms
        return self.props[prop]

    def set(self, prop, value):
        assert prop == "pos"
        self.pos_ms = value

    def read(self):
        if self.read_count >= self.total_frames:
            return False, None
        self.read_count += 1
        self.pos_ms += self.step_ms
        return True, f"frame{self.read_count}"

    def release(self):
        self.released = True


class FakeWriter:

    def __init__(self, path, fourcc, fps, size):
        self.path = path
        self.fps = fps
        self.size = size
        self.frames = []
        self.released = False

    def isOpened(self):
        return True

    def write(self, frame):
        self.frames.append(frame)

    def release(self):
        self.released = True


@pytest.fixture
def fake_cv2(monkeypatch):
    state = SimpleNamespace(capture=FakeCapture(), writers=[])

    def make_writer(*args):
        writer = FakeWriter(*args)
        state.writers.append(writer)
        return writer

    module = SimpleNamespace(
        CAP_PROP_FPS="fps",
        CAP_PROP_FRAME_WIDTH="width",
        CAP_PROP_FRAME_HEIGHT="height",
        CAP_PROP_POS_MSEC="pos",
        VideoCapture=lambda path: state.capture,
        VideoWriter=make_writer,
        VideoWriter_fourcc=lambda *chars: "".join(chars),
        resize=lambda frame, size: f"{frame}@{size[0]}x{size[1]}",
    )
    monkeypatch.setattr(strategies, "cv2", module)
    return state


class TestFrameCaptureStrategy:

    def _capture(self, tmp_path, strategy=None, cancelled=None):
        reports = []
        frames = (strategy or FrameCaptureStrategy()).capture(
            tmp_path / "in.mp4",
            WINDOW,
            tmp_path / "out.mp4",
            lambda value, message: reports.append(value),
            cancelled or threading.Event(),
        )
        return frames, reports

    def test_records_exactly_the_window(self, tmp_path, fake_cv2):
        frames, reports = self._capture(tmp_path)

        assert frames == 50
        assert fake_cv2.capture.pos_ms == 7000
        assert len(fake_cv2.writers[0].frames) == 50
        assert fake_cv2.writers[0].released
        assert fake_cv2.capture.released
        assert reports == sorted(reports)

    def test_stops_at_window_end(self, tmp_path, fake_cv2):
        # the stream advances faster than the advertised frame rate
        fake_cv2.capture = FakeCapture(fps=10.0, step_ms=200.0)

        frames, _ = self._capture(tmp_path)

        assert frames == 25

    def test_stops_at_frame_budget(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(fps=10.0, step_ms=50.0)

        frames, _ = self._capture(tmp_path)

        assert frames == 50
        assert fake_cv2.capture.pos_ms == 4500

    def test_short_source(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(total_frames=12)

        frames, _ = self._capture(tmp_path)

        assert frames == 12

    def test_missing_fps_uses_fallback(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(fps=0.0, step_ms=1000 / 24)

        frames, _ = self._capture(tmp_path, FrameCaptureStrategy(fallback_fps=24))

        assert fake_cv2.writers[0].fps == 24
        assert frames == 120

    def test_large_frames_are_resized(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(width=3840, height=2160)

        self._capture(tmp_path)

        assert fake_cv2.writers[0].size == (1920, 1080)
        assert fake_cv2.writers[0].frames[0] == "frame1@1920x1080"

    def test_unreadable_source(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(opened=False)

        with pytest.raises(TrimError, match="loading failed"):
            self._capture(tmp_path)

    def test_no_frames(self, tmp_path, fake_cv2):
        fake_cv2.capture = FakeCapture(total_frames=0)

        with pytest.raises(TrimError, match="No frames"):
            self._capture(tmp_path)

    def test_cancelled(self, tmp_path, fake_cv2):
        cancelled = threading.Event()
        cancelled.set()

        with pytest.raises(TrimError, match="cancelled"):
            self._capture(tmp_path, cancelled=cancelled)

    @pytest.mark.asyncio
    async def test_async_trim_reports_progress(self, tmp_path, fake_cv2):
        updates = []
        tracker = ProgressTracker(updates.append)

        result = await FrameCaptureStrategy().trim(tmp_path / "in.mp4", WINDOW, tmp_path / "out.mp4", tracker)

        assert result == tmp_path / "out.mp4"
        assert updates[-1].progress == 100
        assert [u.progress for u in updates] == sorted(u.progress for u in updates)
