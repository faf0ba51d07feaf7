"""Encoder bridge: an external process consuming raw RGB24 frames.

Frames are piped to ffmpeg's stdin and encoded to H.264 with 4:2:0 chroma so
the output plays in ordinary players.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

from pydantic import Field

from segment_stream.errors import SizeError, StreamIOError
from segment_stream.video.process import FFmpegConfig, ProcessBridge
from segment_stream.video.types import Frame, frame_size

logger = logging.getLogger(__name__)


class EncoderConfig(FFmpegConfig):
    """Configuration for the output encoder."""

    codec: str = Field("libx264", description="Video codec")
    preset: str = Field("veryfast", description="Speed/quality preset")
    crf: int = Field(23, ge=0, le=51, description="Constant rate factor")
    output_pix_fmt: str = Field("yuv420p", description="Output pixel format")


def build_encoder_command(
    output: Union[str, Path],
    width: int,
    height: int,
    fps: float,
    config: Optional[EncoderConfig] = None,
) -> List[str]:
    """Build the ffmpeg command line for encoding raw RGB24 from stdin.

    Args:
        output: Destination file path
        width: Frame width in pixels
        height: Frame height in pixels
        fps: Input frame rate
        config: Encoder configuration

    Returns:
        Command as an argument list
    """
    config = config or EncoderConfig()

    cmd = [config.ffmpeg_binary, "-hide_banner", "-loglevel", "error", "-y"]
    cmd += ["-f", "rawvideo", "-pix_fmt", "rgb24"]
    cmd += ["-video_size", f"{width}x{height}"]
    cmd += ["-framerate", f"{fps:.3f}"]
    cmd += ["-i", "-"]
    cmd += ["-an", "-sn", "-dn"]
    cmd += ["-c:v", config.codec, "-preset", config.preset, "-crf", str(config.crf)]
    cmd += ["-pix_fmt", config.output_pix_fmt]
    cmd.append(str(output))
    return cmd


class FFmpegEncoder(ProcessBridge):
    """Frame sink backed by an external encode process.

    Example:
        >>> encoder = await FFmpegEncoder.spawn(Path("out/clip.mp4"), 1280, 720, 30.0)
        >>> await encoder.write_frame(frame)
        >>> await encoder.finish()
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        width: int,
        height: int,
        name: str = "ffmpeg encoder",
        stderr_tail_lines: int = 50,
    ) -> None:
        """Initialize encoder around a started process.

        Args:
            process: Child process with a stdin pipe
            width: Frame width in pixels
            height: Frame height in pixels
            name: Name used in logs and errors
            stderr_tail_lines: Diagnostic lines kept for error reports
        """
        super().__init__(process, name, stderr_tail_lines)
        self._width = width
        self._height = height
        self._frame_size = frame_size(width, height)
        self._frames_written = 0

    @classmethod
    async def spawn(
        cls,
        output: Union[str, Path],
        width: int,
        height: int,
        fps: float,
        config: Optional[EncoderConfig] = None,
    ) -> "FFmpegEncoder":
        """Launch ffmpeg writing an encoded video to ``output``.

        Parent directories of ``output`` are created first.

        Raises:
            LaunchError: If ffmpeg cannot be started
        """
        config = config or EncoderConfig()
        output = Path(output)

        if output.parent != Path("."):
            output.parent.mkdir(parents=True, exist_ok=True)

        cmd = build_encoder_command(output, width, height, fps, config)
        return await cls.from_command(
            cmd, width, height, stderr_tail_lines=config.stderr_tail_lines
        )

    @classmethod
    async def from_command(
        cls,
        command: Sequence[str],
        width: int,
        height: int,
        name: str = "ffmpeg encoder",
        stderr_tail_lines: int = 50,
    ) -> "FFmpegEncoder":
        """Launch any command that reads raw RGB24 frames from stdin.

        Raises:
            LaunchError: If the command cannot be started
        """
        process = await cls._launch(command, name, stdin=True)
        return cls(
            process, width, height, name=name, stderr_tail_lines=stderr_tail_lines
        )

    async def write_frame(self, frame: Frame) -> None:
        """Write one frame to the process.

        Waits while the pipe is full, which throttles the caller to the
        encoder's pace.

        Raises:
            SizeError: If the frame does not match the encoder dimensions
            StreamIOError: If the pipe is closed
        """
        stdin = self._process.stdin
        if stdin is None:
            raise StreamIOError(f"{self._name} stdin is not connected")

        data = frame.to_bytes()
        if len(data) != self._frame_size:
            raise SizeError(
                f"Frame {frame.width}x{frame.height} does not match "
                f"encoder size {self._width}x{self._height}"
            )

        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise StreamIOError(
                f"Failed to write frame bytes to {self._name}: {e}"
            ) from e

        self._frames_written += 1

    async def finish(self) -> None:
        """Close stdin, then wait for the process to exit.

        Closing first lets the encoder flush its output; waiting with stdin
        open would block both sides.

        Raises:
            ExternalProcessError: If the process exited with non-zero status
        """
        await self._close_stdin()
        logger.info(f"Closed {self._name} input after {self._frames_written} frames")
        await self._wait_and_check()

    async def _close_stdin(self) -> None:
        stdin = self._process.stdin
        if stdin is None or stdin.is_closing():
            return

        stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            # The exit status below reports the actual failure
            logger.debug(f"{self._name} input already closed: {e}")

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def frames_written(self) -> int:
        return self._frames_written
