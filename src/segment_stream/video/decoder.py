"""Decoder bridge: an external process producing raw RGB24 frames.

ffmpeg is driven to decode any input it understands and write headerless,
tightly packed RGB24 frames to its stdout, as fast as it decodes them.
"""

import asyncio
import logging
from typing import List, Optional, Sequence

from segment_stream.errors import StreamIOError, TruncatedStreamError
from segment_stream.video.process import FFmpegConfig, ProcessBridge
from segment_stream.video.types import Frame, frame_size

logger = logging.getLogger(__name__)


def build_decoder_command(
    source: str,
    width: int,
    height: int,
    rescale: bool,
    ffmpeg_binary: str = "ffmpeg",
) -> List[str]:
    """Build the ffmpeg command line for raw RGB24 decoding.

    Args:
        source: Input path or URL, passed through unchanged
        width: Output width, used only when rescaling
        height: Output height, used only when rescaling
        rescale: Whether to scale to width x height
        ffmpeg_binary: ffmpeg executable

    Returns:
        Command as an argument list
    """
    cmd = [ffmpeg_binary, "-hide_banner", "-loglevel", "error"]
    cmd += ["-i", source]
    # First video stream only; drop audio, subtitle and data streams
    cmd += ["-map", "0:v:0", "-an", "-sn", "-dn"]

    if rescale:
        cmd += ["-vf", f"scale={width}:{height}"]

    # Passthrough timestamps: emit frames at decode pace, no dup/drop
    cmd += ["-vsync", "0"]
    cmd += ["-f", "rawvideo", "-pix_fmt", "rgb24", "-"]
    return cmd


class FFmpegDecoder(ProcessBridge):
    """Frame source backed by an external decode process.

    Reads exactly one frame's worth of bytes per call from the process's
    stdout. A clean end of stream only happens on a frame boundary.

    Example:
        >>> decoder = await FFmpegDecoder.spawn("clip.mp4", 1280, 720, rescale=False)
        >>> frame = await decoder.read_frame()
        >>> print(frame.width, frame.height)
        >>> await decoder.finish()
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        width: int,
        height: int,
        name: str = "ffmpeg decoder",
        stderr_tail_lines: int = 50,
        source: str = "ffmpeg",
    ) -> None:
        """Initialize decoder around a started process.

        Args:
            process: Child process with a stdout pipe
            width: Frame width in pixels
            height: Frame height in pixels
            name: Name used in logs and errors
            stderr_tail_lines: Diagnostic lines kept for error reports
            source: Source name recorded in frame metadata
        """
        super().__init__(process, name, stderr_tail_lines)
        self._width = width
        self._height = height
        self._frame_size = frame_size(width, height)
        self._frames_read = 0
        self._source = source

    @classmethod
    async def spawn(
        cls,
        source: str,
        width: int,
        height: int,
        rescale: bool = False,
        config: Optional[FFmpegConfig] = None,
    ) -> "FFmpegDecoder":
        """Launch ffmpeg decoding ``source`` to raw RGB24.

        Raises:
            LaunchError: If ffmpeg cannot be started
        """
        config = config or FFmpegConfig()
        cmd = build_decoder_command(
            source, width, height, rescale, ffmpeg_binary=config.ffmpeg_binary
        )
        return await cls.from_command(
            cmd,
            width,
            height,
            stderr_tail_lines=config.stderr_tail_lines,
            source=source,
        )

    @classmethod
    async def from_command(
        cls,
        command: Sequence[str],
        width: int,
        height: int,
        name: str = "ffmpeg decoder",
        stderr_tail_lines: int = 50,
        source: Optional[str] = None,
    ) -> "FFmpegDecoder":
        """Launch any command that writes raw RGB24 frames to stdout.

        Raises:
            LaunchError: If the command cannot be started
        """
        process = await cls._launch(command, name, stdout=True)
        return cls(
            process,
            width,
            height,
            name=name,
            stderr_tail_lines=stderr_tail_lines,
            source=source or command[0],
        )

    async def read_frame(self) -> Optional[Frame]:
        """Read the next frame from the process.

        Returns:
            Next frame, or None on clean end of stream

        Raises:
            TruncatedStreamError: If the stream ends mid-frame
            StreamIOError: If reading the pipe fails
        """
        stdout = self._process.stdout
        if stdout is None:
            raise StreamIOError(f"{self._name} stdout is not connected")

        try:
            buf = await stdout.readexactly(self._frame_size)
        except asyncio.IncompleteReadError as e:
            if not e.partial:
                logger.debug(
                    f"{self._name} reached end of stream after "
                    f"{self._frames_read} frames"
                )
                return None
            raise TruncatedStreamError(self._frame_size, len(e.partial)) from e
        except OSError as e:
            raise StreamIOError(
                f"Failed to read frame bytes from {self._name}: {e}"
            ) from e

        self._frames_read += 1
        return Frame.from_bytes(
            buf,
            self._width,
            self._height,
            frame_number=self._frames_read,
            source=self._source,
        )

    async def finish(self) -> None:
        """Wait for the process to exit after the stream was consumed.

        Raises:
            ExternalProcessError: If the process exited with non-zero status
        """
        await self._wait_and_check()

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def frame_size(self) -> int:
        return self._frame_size

    @property
    def frames_read(self) -> int:
        return self._frames_read
