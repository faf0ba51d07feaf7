"""Rate-limited progress and ETA reporting for batch encodes.

On an interactive terminal the progress line is rewritten in place; anywhere
else each update becomes one log record.
"""

import logging
import sys
import time
from typing import Callable, Optional, TextIO

from pydantic import BaseModel

logger = logging.getLogger(__name__)

UPDATE_INTERVAL_SEC = 0.5
MIN_FPS = 0.001


def format_hms(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.mmm``.

    Negative input is treated as zero.
    """
    total_ms = round(max(seconds, 0.0) * 1000)
    total_s, ms = divmod(total_ms, 1000)
    total_m, s = divmod(total_s, 60)
    h, m = divmod(total_m, 60)
    return f"{h:02d}:{m:02d}:{s:02d}.{ms:03d}"


class ProgressSnapshot(BaseModel):
    """Derived progress figures at one point in time."""

    frame_idx: int
    elapsed_seconds: float
    speed_fps: float
    position_seconds: float
    total_frames: Optional[int] = None
    percent: Optional[float] = None
    eta_seconds: Optional[float] = None

    def describe(self, tty: bool = False) -> str:
        """Render the snapshot as one line, omitting unknown fields."""
        speed = f"{self.speed_fps:5.1f}" if tty else f"{self.speed_fps:.1f}"

        parts = [f"frame {self.frame_idx}"]
        if self.total_frames is not None:
            parts[0] += f"/{self.total_frames}"
        if self.percent is not None:
            pct = f"{self.percent:5.1f}" if tty else f"{self.percent:.1f}"
            parts.append(f"({pct}%)")

        parts.append(f"pos {format_hms(self.position_seconds)}")
        parts.append(f"elapsed {format_hms(self.elapsed_seconds)}")
        parts.append(f"speed {speed} fps")

        if self.eta_seconds is not None:
            parts.append(f"ETA {format_hms(self.eta_seconds)}")

        return " ".join(parts)


class ProgressTracker:
    """Throughput and ETA reporter driven by the frame counter.

    Example:
        >>> tracker = ProgressTracker(enabled=True, fps=25.0, total_frames=1000)
        >>> for idx in range(1, 1001):
        ...     tracker.update(idx)
        >>> tracker.finish(1000)
    """

    def __init__(
        self,
        enabled: bool,
        fps: float,
        total_frames: Optional[int] = None,
        stream: Optional[TextIO] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize tracker.

        Args:
            enabled: If False every call is a no-op
            fps: Source frame rate, used for the stream position
            total_frames: Expected frame count, if known
            stream: Terminal stream for in-place updates (default stderr)
            clock: Monotonic time source in seconds
        """
        self.enabled = enabled
        self.fps = fps
        self.total_frames = total_frames if total_frames and total_frames > 0 else None
        self._stream = stream if stream is not None else sys.stderr
        self._clock = clock

        isatty = getattr(self._stream, "isatty", None)
        self._tty = bool(isatty()) if callable(isatty) else False

        self._started_at = clock()
        self._last_update_at: Optional[float] = None
        self._renders = 0

    def snapshot(self, frame_idx: int, now: Optional[float] = None) -> ProgressSnapshot:
        """Compute progress figures for ``frame_idx`` at time ``now``."""
        if now is None:
            now = self._clock()

        elapsed = now - self._started_at
        speed = frame_idx / elapsed if elapsed > 0 else 0.0
        position = frame_idx / max(self.fps, MIN_FPS)

        percent = None
        eta = None
        if self.total_frames is not None and speed > 0:
            remaining = max(self.total_frames - frame_idx, 0)
            percent = frame_idx / self.total_frames * 100.0
            eta = remaining / speed

        return ProgressSnapshot(
            frame_idx=frame_idx,
            elapsed_seconds=elapsed,
            speed_fps=speed,
            position_seconds=position,
            total_frames=self.total_frames,
            percent=percent,
            eta_seconds=eta,
        )

    def update(self, frame_idx: int) -> bool:
        """Report progress if due.

        The first frame always renders; after that at most one render per
        half second.

        Returns:
            True if a progress line was rendered
        """
        if not self.enabled:
            return False

        now = self._clock()
        if (
            frame_idx != 1
            and self._last_update_at is not None
            and now - self._last_update_at < UPDATE_INTERVAL_SEC
        ):
            return False

        self._render(frame_idx, now)
        return True

    def finish(self, frame_idx: int) -> None:
        """Render a final line regardless of the rate limit."""
        if not self.enabled:
            return

        self._render(frame_idx, self._clock())

        if self._tty:
            self._stream.write("\n")
            self._stream.flush()

    def _render(self, frame_idx: int, now: float) -> None:
        self._last_update_at = now
        self._renders += 1
        snapshot = self.snapshot(frame_idx, now)

        if self._tty:
            self._stream.write("\r" + snapshot.describe(tty=True))
            self._stream.flush()
        else:
            logger.info(f"Progress: {snapshot.describe()}")

    @property
    def is_tty(self) -> bool:
        return self._tty

    @property
    def renders(self) -> int:
        """Get number of progress lines rendered so far."""
        return self._renders
