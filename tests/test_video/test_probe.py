"""Tests for ffprobe metadata parsing."""

import json
import sys

import pytest

from segment_stream.video.probe import (
    ProbeResult,
    build_probe_command,
    parse_probe_output,
    parse_rate,
    probe_video,
)
from segment_stream.video.process import FFmpegConfig


def probe_json(stream=None, fmt=None) -> str:
    payload = {"streams": [stream or {}], "format": fmt or {}}
    return json.dumps(payload)


class TestParseRate:
    """Test frame rate parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30/1", 30.0),
            ("30000/1001", 30000 / 1001),
            ("25", 25.0),
            ("23.976", 23.976),
            (" 24/1 ", 24.0),
        ],
    )
    def test_valid(self, value, expected):
        assert parse_rate(value) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "value", [None, "", "N/A", "0/0", "30/0", "0/1", "-25", "nan", "inf", "abc/1"]
    )
    def test_invalid(self, value):
        assert parse_rate(value) is None


class TestParseProbeOutput:
    """Test field-by-field parsing of ffprobe JSON."""

    def test_full_output(self):
        payload = probe_json(
            {"width": 1920, "height": 1080, "r_frame_rate": "30000/1001", "nb_frames": "1800"},
            {"duration": "60.060000"},
        )

        result = parse_probe_output(payload)

        assert result.width == 1920
        assert result.height == 1080
        assert result.fps == pytest.approx(29.97, abs=0.01)
        assert result.nb_frames == 1800
        assert result.duration_seconds == pytest.approx(60.06)

    def test_fields_degrade_independently(self):
        """Test garbage in one field leaves the others intact."""
        payload = probe_json(
            {"width": 640, "height": "N/A", "r_frame_rate": "0/0", "nb_frames": "N/A"},
            {"duration": "12.5"},
        )

        result = parse_probe_output(payload)

        assert result.width == 640
        assert result.height is None
        assert result.fps is None
        assert result.nb_frames is None
        assert result.duration_seconds == 12.5

    def test_no_streams(self):
        result = parse_probe_output('{"format": {}}')

        assert result == ProbeResult()

    def test_empty_output(self):
        assert parse_probe_output("") == ProbeResult()

    def test_invalid_json(self):
        with pytest.raises(ValueError):
            parse_probe_output("{not json")

    def test_non_object_json(self):
        with pytest.raises(ValueError):
            parse_probe_output("[1, 2]")

    def test_malformed_stream_entries(self):
        """Test non-object stream and format entries parse as unknown."""
        assert parse_probe_output('{"streams": [42], "format": "x"}') == ProbeResult()
        assert parse_probe_output('{"streams": {"width": 640}}') == ProbeResult()


class TestProbeResult:
    """Test derived values."""

    def test_total_from_nb_frames(self):
        result = ProbeResult(nb_frames=500, duration_seconds=100.0)

        assert result.estimate_total_frames(30.0) == 500

    def test_total_from_duration(self):
        """Test the estimate falls back to round(duration * fps)."""
        result = ProbeResult(duration_seconds=10.02)

        assert result.estimate_total_frames(25.0) == 250

    def test_total_unknown(self):
        assert ProbeResult().estimate_total_frames(30.0) is None

    def test_total_rounds_to_zero(self):
        assert ProbeResult(duration_seconds=0.001).estimate_total_frames(1.0) is None


class TestProbeVideo:
    """Test running the probe process."""

    def test_command(self):
        cmd = build_probe_command("in.mp4", "ffprobe")

        assert cmd == [
            "ffprobe", "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,r_frame_rate,nb_frames:format=duration",
            "-of", "json",
            "in.mp4",
        ]

    @pytest.mark.asyncio
    async def test_missing_binary_degrades(self):
        """Test a missing ffprobe yields an all-unknown result."""
        config = FFmpegConfig(ffprobe_binary="segment-stream-no-such-ffprobe")

        result = await probe_video("in.mp4", config)

        assert result == ProbeResult()

    @pytest.mark.asyncio
    async def test_failing_probe_degrades(self):
        """Test a non-zero exit yields an all-unknown result."""
        config = FFmpegConfig(ffprobe_binary=sys.executable)

        # python rejects ffprobe's flags and exits non-zero
        result = await probe_video("in.mp4", config)

        assert result == ProbeResult()
