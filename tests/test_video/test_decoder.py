"""Tests for the decoder bridge.

A child Python interpreter stands in for ffmpeg and writes raw frames to
its stdout.
"""

import asyncio

import pytest

from conftest import python_command
from segment_stream.errors import (
    ExternalProcessError,
    LaunchError,
    TruncatedStreamError,
)
from segment_stream.video.decoder import FFmpegDecoder, build_decoder_command
from segment_stream.video.process import FFmpegConfig


class TestBuildDecoderCommand:
    """Test decoder command line construction."""

    def test_without_rescale(self):
        """Test the native-size command line."""
        cmd = build_decoder_command("in.mp4", 640, 480, rescale=False)

        assert cmd == [
            "ffmpeg", "-hide_banner", "-loglevel", "error",
            "-i", "in.mp4",
            "-map", "0:v:0", "-an", "-sn", "-dn",
            "-vsync", "0",
            "-f", "rawvideo", "-pix_fmt", "rgb24", "-",
        ]

    def test_with_rescale(self):
        """Test a scale filter is inserted when rescaling."""
        cmd = build_decoder_command("in.mp4", 320, 240, rescale=True)

        index = cmd.index("-vf")
        assert cmd[index + 1] == "scale=320:240"
        assert index < cmd.index("-vsync")

    def test_custom_binary(self):
        cmd = build_decoder_command("in.mp4", 2, 2, False, ffmpeg_binary="/opt/ffmpeg")

        assert cmd[0] == "/opt/ffmpeg"

    def test_source_passed_through(self):
        """Test URLs and odd paths are passed unchanged."""
        cmd = build_decoder_command("rtsp://cam/stream 1", 2, 2, False)

        assert cmd[cmd.index("-i") + 1] == "rtsp://cam/stream 1"


class TestFFmpegDecoder:
    """Test reading frames from a child process."""

    @pytest.mark.asyncio
    async def test_reads_frames_until_clean_eof(self):
        """Test whole frames are returned, then None at a frame boundary."""
        script = "import sys; sys.stdout.buffer.write(bytes(range(24)) * 3)"
        decoder = await FFmpegDecoder.from_command(python_command(script), 4, 2)

        frames = []
        while True:
            frame = await asyncio.wait_for(decoder.read_frame(), timeout=10)
            if frame is None:
                break
            frames.append(frame)
        await decoder.finish()

        assert len(frames) == 3
        assert all(f.to_bytes() == bytes(range(24)) for f in frames)
        assert [f.metadata.frame_number for f in frames] == [1, 2, 3]
        assert decoder.frames_read == 3
        assert decoder.returncode == 0
        assert decoder.is_finished

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        """Test a process producing nothing yields a clean EOF."""
        decoder = await FFmpegDecoder.from_command(python_command("pass"), 4, 2)

        assert await asyncio.wait_for(decoder.read_frame(), timeout=10) is None
        await decoder.finish()

    @pytest.mark.asyncio
    async def test_truncated_frame(self):
        """Test EOF 10 bytes into a 640x480 frame is a truncation error."""
        script = "import sys; sys.stdout.buffer.write(bytes(10))"
        decoder = await FFmpegDecoder.from_command(python_command(script), 640, 480)

        with pytest.raises(TruncatedStreamError) as exc_info:
            await asyncio.wait_for(decoder.read_frame(), timeout=10)

        assert exc_info.value.expected == 921_600
        assert exc_info.value.received == 10
        await decoder.kill()

    @pytest.mark.asyncio
    async def test_truncated_after_whole_frames(self):
        """Test a partial trailing frame fails after the whole ones."""
        script = "import sys; sys.stdout.buffer.write(bytes(24) + bytes(5))"
        decoder = await FFmpegDecoder.from_command(python_command(script), 4, 2)

        assert await decoder.read_frame() is not None
        with pytest.raises(TruncatedStreamError):
            await decoder.read_frame()
        await decoder.kill()

    @pytest.mark.asyncio
    async def test_finish_reports_failure_with_stderr(self):
        """Test a non-zero exit raises with the captured diagnostics."""
        script = (
            "import sys; "
            "sys.stderr.write('in.mp4: No such file or directory\\n'); "
            "sys.exit(1)"
        )
        decoder = await FFmpegDecoder.from_command(python_command(script), 4, 2)

        assert await asyncio.wait_for(decoder.read_frame(), timeout=10) is None
        with pytest.raises(ExternalProcessError) as exc_info:
            await decoder.finish()

        assert exc_info.value.returncode == 1
        assert "No such file or directory" in exc_info.value.stderr_tail
        assert "No such file or directory" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        """Test a missing executable raises LaunchError."""
        with pytest.raises(LaunchError):
            await FFmpegDecoder.spawn(
                "in.mp4",
                4,
                2,
                config=FFmpegConfig(ffmpeg_binary="segment-stream-no-such-ffmpeg"),
            )

    @pytest.mark.asyncio
    async def test_context_manager_kills_running_process(self):
        """Test leaving the context kills a process that was not finished."""
        script = "import time; time.sleep(60)"
        async with await FFmpegDecoder.from_command(python_command(script), 4, 2) as decoder:
            assert decoder.returncode is None

        assert decoder.returncode is not None
        assert decoder.is_finished

    @pytest.mark.asyncio
    async def test_properties(self):
        decoder = await FFmpegDecoder.from_command(python_command("pass"), 4, 2)

        assert decoder.width == 4
        assert decoder.height == 2
        assert decoder.frame_size == 24
        assert decoder.pid > 0
        await decoder.kill()
