"""Display sinks and snapshot saving.

This module provides an OpenCV window with keyboard controls and a scripted
mock display for testing.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union

import cv2

from segment_stream.video.types import ControlKey, Frame

logger = logging.getLogger(__name__)

ESCAPE_KEY = 27


KEY_BINDINGS = {
    ESCAPE_KEY: ControlKey.QUIT,
    ord("q"): ControlKey.QUIT,
    ord("Q"): ControlKey.QUIT,
    ord("s"): ControlKey.SAVE,
    ord("S"): ControlKey.SAVE,
    ord("p"): ControlKey.UPDATE_PROMPTS,
    ord("P"): ControlKey.UPDATE_PROMPTS,
}


def key_to_control(code: int) -> Optional[ControlKey]:
    """Map a raw ``cv2.waitKey`` code to a control, ignoring modifier bits."""
    if code < 0:
        return None
    return KEY_BINDINGS.get(code & 0xFF)


def delay_for_fps(fps: float) -> int:
    """Get the key polling delay that paces playback at ``fps``.

    Returns:
        Delay in milliseconds, clamped to 1-1000
    """
    if fps <= 0:
        return 1000
    return min(max(round(1000.0 / fps), 1), 1000)


def snapshot_path(save_dir: Union[str, Path], now: Optional[datetime] = None) -> Path:
    """Get the path for a saved frame, named by timestamp."""
    now = now or datetime.now()
    return Path(save_dir) / f"{now.strftime('%Y%m%d-%H%M%S-%f')}.jpg"


def save_frame(frame: Frame, save_dir: Union[str, Path]) -> Path:
    """Write ``frame`` as a JPEG into ``save_dir``.

    Returns:
        Path of the written file

    Raises:
        OSError: If the directory cannot be created or the image not written
    """
    path = snapshot_path(save_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    # OpenCV expects BGR
    bgr = cv2.cvtColor(frame.data, cv2.COLOR_RGB2BGR)
    if not cv2.imwrite(str(path), bgr):
        raise OSError(f"Failed to write image {path}")

    logger.info(f"Saved: {path}")
    return path


class MockDisplay:
    """Mock display for testing without a window system.

    Replays a script of key presses, one per polled frame, and can simulate
    the user closing the window after a number of frames.

    Example:
        >>> display = MockDisplay(keys=[None, ControlKey.SAVE, ControlKey.QUIT])
        >>> await display.initialize()
    """

    def __init__(
        self,
        keys: Optional[Iterable[Optional[ControlKey]]] = None,
        close_after: Optional[int] = None,
    ) -> None:
        """Initialize mock display.

        Args:
            keys: Control returned by each successive ``wait_key`` call
            close_after: Report the window closed once this many frames were shown
        """
        self._keys: List[Optional[ControlKey]] = list(keys or [])
        self._close_after = close_after
        self.frames_shown: List[Frame] = []
        self.delays: List[int] = []
        self._open = False

    async def initialize(self) -> None:
        self._open = True

    def is_closed(self) -> bool:
        if not self._open:
            return True
        return (
            self._close_after is not None
            and len(self.frames_shown) >= self._close_after
        )

    async def show(self, frame: Frame) -> None:
        if not self._open:
            raise RuntimeError("Display not initialized")
        self.frames_shown.append(frame)

    async def wait_key(self, delay_ms: int) -> Optional[ControlKey]:
        self.delays.append(delay_ms)
        if self._keys:
            return self._keys.pop(0)
        return None

    async def close(self) -> None:
        self._open = False


class OpenCVDisplay:
    """OpenCV window sink with keyboard polling.

    HighGUI calls are made on the calling thread; the window and its event
    queue are not safe to drive from a worker thread on every platform.

    Example:
        >>> display = OpenCVDisplay("segment-stream", window_scale=0.5)
        >>> await display.initialize()
        >>> await display.show(frame)
        >>> key = await display.wait_key(33)
        >>> await display.close()
    """

    def __init__(self, window_name: str = "segment-stream", window_scale: float = 1.0) -> None:
        """Initialize display.

        Args:
            window_name: Title of the window
            window_scale: Display scale relative to the frame size
        """
        if window_scale <= 0:
            raise ValueError(f"window_scale must be positive, got {window_scale}")
        self._window_name = window_name
        self._window_scale = window_scale
        self._initialized = False
        self._sized = False
        self._frames_shown = 0

    async def initialize(self) -> None:
        """Create the window."""
        logger.info(f"Opening display window '{self._window_name}'")
        cv2.namedWindow(self._window_name, cv2.WINDOW_NORMAL)
        self._initialized = True

    def is_closed(self) -> bool:
        """Check whether the user closed the window."""
        if not self._initialized:
            return True
        try:
            return cv2.getWindowProperty(self._window_name, cv2.WND_PROP_VISIBLE) < 1
        except cv2.error:
            return True

    async def show(self, frame: Frame) -> None:
        """Display one RGB frame.

        Raises:
            RuntimeError: If not initialized
        """
        if not self._initialized:
            raise RuntimeError("Display not initialized")

        if not self._sized:
            cv2.resizeWindow(
                self._window_name,
                max(int(frame.width * self._window_scale), 1),
                max(int(frame.height * self._window_scale), 1),
            )
            self._sized = True

        cv2.imshow(self._window_name, cv2.cvtColor(frame.data, cv2.COLOR_RGB2BGR))
        self._frames_shown += 1

    async def wait_key(self, delay_ms: int) -> Optional[ControlKey]:
        """Pump window events for ``delay_ms`` and return any control pressed."""
        return key_to_control(cv2.waitKey(max(delay_ms, 1)))

    async def close(self) -> None:
        """Destroy the window."""
        if self._initialized:
            logger.info(f"Closing display ({self._frames_shown} frames shown)")
            try:
                cv2.destroyWindow(self._window_name)
            except cv2.error as e:
                # Already gone when the user closed it
                logger.debug(f"destroyWindow failed: {e}")
            self._initialized = False

    @property
    def frames_shown(self) -> int:
        return self._frames_shown
