"""Common types and protocols for the frame pipeline.

This module defines the frame container, stream metadata and the protocol
interfaces implemented by frame sources and sinks.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol, Tuple

import numpy as np

from segment_stream.errors import SizeError

BYTES_PER_PIXEL = 3
DEFAULT_FPS = 30.0


class ControlKey(Enum):
    """Keyboard commands understood by the pipeline."""

    QUIT = "quit"
    SAVE = "save"
    UPDATE_PROMPTS = "update_prompts"


def frame_size(width: int, height: int) -> int:
    """Get the byte size of one raw RGB24 frame.

    Raises:
        ValueError: If either dimension is not positive
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid dimensions: {width}x{height}")
    return width * height * BYTES_PER_PIXEL


@dataclass
class FrameMetadata:
    """Metadata associated with a video frame."""

    width: int
    height: int
    frame_number: int = 0
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "unknown"

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid dimensions: {self.width}x{self.height}")


@dataclass
class Frame:
    """An RGB24 video frame with metadata.

    Attributes:
        data: Pixel data as a uint8 numpy array of shape (H, W, 3)
        metadata: Frame metadata
    """

    data: np.ndarray
    metadata: FrameMetadata

    def __post_init__(self) -> None:
        """Validate frame after initialization."""
        if self.data.dtype != np.uint8:
            raise ValueError(f"Frame data must be uint8, got {self.data.dtype}")

        if self.data.ndim != 3 or self.data.shape[2] != BYTES_PER_PIXEL:
            raise ValueError(
                f"Frame must have shape (H, W, 3), got {self.data.shape}"
            )

        height, width = self.data.shape[:2]
        if height != self.metadata.height or width != self.metadata.width:
            raise ValueError(
                f"Frame dimensions {width}x{height} don't match "
                f"metadata {self.metadata.width}x{self.metadata.height}"
            )

        # Raw frames on the wire are tightly packed
        if not self.data.flags["C_CONTIGUOUS"]:
            self.data = np.ascontiguousarray(self.data)

    @classmethod
    def from_bytes(
        cls,
        buf: bytes,
        width: int,
        height: int,
        frame_number: int = 0,
        source: str = "unknown",
    ) -> "Frame":
        """Build a frame from an exact-size raw RGB24 buffer.

        Raises:
            SizeError: If the buffer length is not width * height * 3
        """
        expected = frame_size(width, height)
        if len(buf) != expected:
            raise SizeError(
                f"Raw frame has {len(buf)} bytes, expected {expected} "
                f"for {width}x{height}"
            )

        data = np.frombuffer(buf, dtype=np.uint8).reshape(
            (height, width, BYTES_PER_PIXEL)
        )
        metadata = FrameMetadata(
            width=width,
            height=height,
            frame_number=frame_number,
            source=source,
        )
        # frombuffer over bytes is read-only; annotators draw on copies
        return cls(data=data, metadata=metadata)

    def to_bytes(self) -> bytes:
        """Get the raw row-major RGB24 bytes of the frame."""
        return self.data.tobytes()

    def copy(self) -> "Frame":
        """Get a writable deep copy of this frame."""
        metadata = FrameMetadata(
            width=self.metadata.width,
            height=self.metadata.height,
            frame_number=self.metadata.frame_number,
            timestamp=self.metadata.timestamp,
            source=self.metadata.source,
        )
        return Frame(data=self.data.copy(), metadata=metadata)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape

    @property
    def width(self) -> int:
        return self.metadata.width

    @property
    def height(self) -> int:
        return self.metadata.height

    @property
    def nbytes(self) -> int:
        return self.data.nbytes


@dataclass(frozen=True)
class VideoInfo:
    """Dimensions and frame rate of a stream, fixed at startup."""

    width: int
    height: int
    fps: float = DEFAULT_FPS

    @property
    def frame_size(self) -> int:
        return frame_size(self.width, self.height)


# Protocol definitions for dependency injection and testing


class FrameSourceProtocol(Protocol):
    """Protocol for anything that produces fixed-size frames."""

    async def read_frame(self) -> Optional[Frame]:
        """Read the next frame.

        Returns:
            Next frame, or None on clean end of stream
        """
        ...

    async def finish(self) -> None:
        """Release the source after it was exhausted.

        Raises:
            ExternalProcessError: If a backing process failed
        """
        ...

    async def kill(self) -> None:
        """Release the source immediately, discarding unread frames."""
        ...


class FrameSinkProtocol(Protocol):
    """Protocol for anything that consumes fixed-size frames."""

    async def write_frame(self, frame: Frame) -> None:
        """Write one frame.

        Raises:
            StreamIOError: If the sink can no longer accept data
        """
        ...

    async def finish(self) -> None:
        """Signal end of stream and wait for the sink to complete."""
        ...

    async def kill(self) -> None:
        """Abort the sink immediately."""
        ...


class DisplayProtocol(Protocol):
    """Protocol for an interactive display window."""

    async def initialize(self) -> None:
        """Open the window."""
        ...

    def is_closed(self) -> bool:
        """Check whether the user closed the window."""
        ...

    async def show(self, frame: Frame) -> None:
        """Display one frame."""
        ...

    async def wait_key(self, delay_ms: int) -> Optional[ControlKey]:
        """Poll the keyboard for up to ``delay_ms`` milliseconds."""
        ...

    async def close(self) -> None:
        """Close the window."""
        ...
