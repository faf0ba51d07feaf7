"""Camera frame sources.

This module provides V4L2 capture that hands raw YUYV or MJPEG buffers to the
pipeline, and a mock camera producing synthetic YUYV for testing.
"""

import asyncio
import logging
from typing import Optional

import cv2
import numpy as np
from pydantic import BaseModel, Field

from segment_stream.errors import CaptureError
from segment_stream.video.color import yuyv_to_rgb
from segment_stream.video.types import Frame, FrameMetadata, VideoInfo

logger = logging.getLogger(__name__)

YUYV = "YUYV"
JPEG_FOURCCS = ("MJPG", "JPEG")


class CameraConfig(BaseModel):
    """Configuration for camera capture."""

    index: int = Field(0, ge=0, description="Camera index (/dev/videoN)")
    width: int = Field(640, ge=2, description="Requested capture width (best effort)")
    height: int = Field(480, ge=1, description="Requested capture height (best effort)")
    fourcc: str = Field(YUYV, min_length=4, max_length=4, description="Requested pixel format")


def fourcc_to_str(code: int) -> str:
    """Decode an OpenCV FourCC integer into its four characters."""
    return "".join(chr((int(code) >> (8 * i)) & 0xFF) for i in range(4))


def decode_camera_frame(
    width: int, height: int, fourcc: str, buf: bytes, frame_number: int = 0
) -> Frame:
    """Convert one raw camera buffer into an RGB frame.

    Raises:
        SizeError: If a YUYV buffer is too small
        CaptureError: If the pixel format is unsupported or JPEG decoding fails
    """
    if fourcc == YUYV:
        return yuyv_to_rgb(width, height, buf, frame_number=frame_number, source="camera")

    if fourcc in JPEG_FOURCCS:
        bgr = cv2.imdecode(np.frombuffer(buf, dtype=np.uint8), cv2.IMREAD_COLOR)
        if bgr is None:
            raise CaptureError("Failed to decode MJPEG frame")
        rgb = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB)
        metadata = FrameMetadata(
            width=rgb.shape[1],
            height=rgb.shape[0],
            frame_number=frame_number,
            source="camera",
        )
        return Frame(data=rgb, metadata=metadata)

    raise CaptureError(
        f"Unsupported camera pixel format: {fourcc!r} (expected YUYV or MJPG)"
    )


class MockCameraCapture:
    """Mock camera for testing without hardware.

    Produces YUYV color bars whose brightness changes each frame, so frames
    run through the same conversion path as a real YUYV camera.

    Example:
        >>> camera = MockCameraCapture(CameraConfig(width=320, height=240), max_frames=10)
        >>> await camera.initialize()
        >>> frame = await camera.read_frame()
    """

    def __init__(self, config: CameraConfig, max_frames: Optional[int] = None) -> None:
        """Initialize mock camera.

        Args:
            config: Camera configuration
            max_frames: End the stream after this many frames (None for endless)
        """
        self._config = config
        self._max_frames = max_frames
        self._frame_count = 0
        self._initialized = False

    async def initialize(self) -> VideoInfo:
        """Initialize the mock camera.

        Returns:
            Negotiated stream info
        """
        if (self._config.width * self._config.height) % 2:
            raise CaptureError(
                f"YUYV frame needs an even pixel count, got "
                f"{self._config.width}x{self._config.height}"
            )
        logger.info(
            f"Initializing mock camera: {self._config.width}x{self._config.height} YUYV"
        )
        self._initialized = True
        return VideoInfo(width=self._config.width, height=self._config.height)

    def _generate_yuyv(self) -> bytes:
        width, height = self._config.width, self._config.height
        # (Y, U, V) per bar: white, yellow, cyan, green, magenta, red, blue, black
        bars = [
            (235, 128, 128),
            (210, 16, 146),
            (170, 166, 16),
            (145, 54, 34),
            (106, 202, 222),
            (81, 90, 240),
            (41, 240, 110),
            (16, 128, 128),
        ]
        shift = self._frame_count % 16

        # Per-pixel (Y, U, V) in raster order, then packed two pixels per macropixel
        columns = np.minimum(np.arange(width) * len(bars) // width, len(bars) - 1)
        yuv = np.array(bars, dtype=np.int32)[columns]
        yuv[:, 0] = np.minimum(yuv[:, 0] + shift, 235)
        pixels = np.tile(yuv, (height, 1)).astype(np.uint8)

        macro = np.empty((pixels.shape[0] // 2, 4), dtype=np.uint8)
        macro[:, 0] = pixels[0::2, 0]
        macro[:, 1] = pixels[0::2, 1]
        macro[:, 2] = pixels[1::2, 0]
        macro[:, 3] = pixels[0::2, 2]
        return macro.tobytes()

    async def read_frame(self) -> Optional[Frame]:
        """Produce the next synthetic frame.

        Returns:
            Frame, or None once max_frames frames were produced

        Raises:
            CaptureError: If not initialized
        """
        if not self._initialized:
            raise CaptureError("Camera not initialized")

        if self._max_frames is not None and self._frame_count >= self._max_frames:
            return None

        buf = self._generate_yuyv()
        self._frame_count += 1
        return decode_camera_frame(
            self._config.width,
            self._config.height,
            YUYV,
            buf,
            frame_number=self._frame_count,
        )

    async def finish(self) -> None:
        await self.kill()

    async def kill(self) -> None:
        """Close the mock camera."""
        if self._initialized:
            logger.info(f"Closing mock camera after {self._frame_count} frames")
        self._initialized = False

    @property
    def config(self) -> CameraConfig:
        return self._config


class V4L2CameraCapture:
    """Live camera capture through OpenCV's V4L2 backend.

    RGB conversion inside OpenCV is disabled so the raw driver buffer reaches
    the pipeline; YUYV goes through the integer color converter and MJPEG
    through OpenCV's JPEG decoder.

    Example:
        >>> camera = V4L2CameraCapture(CameraConfig(index=0))
        >>> info = await camera.initialize()
        >>> frame = await camera.read_frame()
        >>> await camera.kill()
    """

    def __init__(self, config: CameraConfig) -> None:
        self._config = config
        self._cap: Optional[cv2.VideoCapture] = None
        self._width = config.width
        self._height = config.height
        self._fourcc = config.fourcc
        self._frame_count = 0

    async def initialize(self) -> VideoInfo:
        """Open the device and negotiate the capture format.

        Returns:
            Negotiated stream info

        Raises:
            CaptureError: If the device cannot be opened
        """
        logger.info(
            f"Opening camera {self._config.index}: requested "
            f"{self._config.width}x{self._config.height} {self._config.fourcc}"
        )

        # OpenCV calls block; keep them off the event loop
        loop = asyncio.get_event_loop()
        opened = await loop.run_in_executor(None, self._open)
        if not opened:
            raise CaptureError(f"Failed to open camera device {self._config.index}")

        logger.info(f"Camera format: {self._width}x{self._height} {self._fourcc}")

        fps = self._cap.get(cv2.CAP_PROP_FPS) if self._cap is not None else 0.0
        return VideoInfo(
            width=self._width, height=self._height, fps=fps if fps > 0 else 30.0
        )

    def _open(self) -> bool:
        self._cap = cv2.VideoCapture(self._config.index, cv2.CAP_V4L2)
        if not self._cap.isOpened():
            return False

        self._cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self._config.fourcc))
        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.height)
        self._cap.set(cv2.CAP_PROP_CONVERT_RGB, 0)

        # The driver may pick a different size or format
        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._fourcc = fourcc_to_str(self._cap.get(cv2.CAP_PROP_FOURCC))
        return True

    async def read_frame(self) -> Optional[Frame]:
        """Capture and convert one frame.

        Raises:
            CaptureError: If not opened, the read fails or the format is unsupported
        """
        if self._cap is None:
            raise CaptureError("Camera not initialized")

        loop = asyncio.get_event_loop()
        ret, raw = await loop.run_in_executor(None, self._cap.read)
        if not ret or raw is None:
            raise CaptureError("Failed to capture frame")

        self._frame_count += 1
        return decode_camera_frame(
            self._width,
            self._height,
            self._fourcc,
            raw.tobytes(),
            frame_number=self._frame_count,
        )

    async def finish(self) -> None:
        await self.kill()

    async def kill(self) -> None:
        """Release the camera device."""
        if self._cap is not None:
            logger.info("Closing camera")
            loop = asyncio.get_event_loop()
            await loop.run_in_executor(None, self._cap.release)
            self._cap = None

    @property
    def config(self) -> CameraConfig:
        return self._config
