"""Stream metadata probing via ffprobe.

Every field is optional: missing or unparseable values come back as None and
callers fall back to defaults. A failed probe never aborts the pipeline by
itself.
"""

import asyncio
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from segment_stream.video.process import FFmpegConfig

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SEC = 30.0


@dataclass(frozen=True)
class ProbeResult:
    """Metadata reported by ffprobe for the first video stream."""

    width: Optional[int] = None
    height: Optional[int] = None
    fps: Optional[float] = None
    duration_seconds: Optional[float] = None
    nb_frames: Optional[int] = None

    def estimate_total_frames(self, fps: float) -> Optional[int]:
        """Estimate the number of frames in the stream.

        Prefers the container's frame count, then duration * fps.
        """
        if self.nb_frames is not None:
            return self.nb_frames
        if self.duration_seconds is not None and fps > 0:
            total = round(self.duration_seconds * fps)
            return total if total > 0 else None
        return None


def parse_rate(value: Optional[str]) -> Optional[float]:
    """Parse a frame rate given as ``num/den`` or a decimal string.

    Returns:
        Frame rate, or None if the value is empty, malformed, zero-denominator
        or not a positive finite number
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        if "/" in text:
            num, den = text.split("/", 1)
            den_value = float(den.strip())
            if den_value == 0.0:
                return None
            rate = float(num.strip()) / den_value
        else:
            rate = float(text)
    except ValueError:
        return None

    if not math.isfinite(rate) or rate <= 0:
        return None
    return rate


def _parse_positive_int(value: Any) -> Optional[int]:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _parse_positive_float(value: Any) -> Optional[float]:
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def parse_probe_output(payload: str) -> ProbeResult:
    """Parse ffprobe's JSON output into a ProbeResult.

    Raises:
        ValueError: If the payload is not valid JSON
    """
    data: Dict[str, Any] = json.loads(payload) if payload.strip() else {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    streams = data.get("streams")
    stream = streams[0] if isinstance(streams, list) and streams else {}
    if not isinstance(stream, dict):
        stream = {}
    fmt = data.get("format")
    if not isinstance(fmt, dict):
        fmt = {}

    return ProbeResult(
        width=_parse_positive_int(stream.get("width")),
        height=_parse_positive_int(stream.get("height")),
        fps=parse_rate(stream.get("r_frame_rate")),
        duration_seconds=_parse_positive_float(fmt.get("duration")),
        nb_frames=_parse_positive_int(stream.get("nb_frames")),
    )


def build_probe_command(source: str, ffprobe_binary: str = "ffprobe") -> List[str]:
    """Build the ffprobe command line for a source."""
    return [
        ffprobe_binary,
        "-v", "error",
        "-select_streams", "v:0",
        "-show_entries", "stream=width,height,r_frame_rate,nb_frames:format=duration",
        "-of", "json",
        source,
    ]


async def probe_video(
    source: str,
    config: Optional[FFmpegConfig] = None,
    timeout: float = PROBE_TIMEOUT_SEC,
) -> ProbeResult:
    """Query stream metadata for ``source``.

    Args:
        source: Input path or URL
        config: ffmpeg configuration (for the ffprobe binary)
        timeout: Seconds to wait for ffprobe

    Returns:
        Probe result; all fields None if ffprobe is unavailable or fails
    """
    config = config or FFmpegConfig()
    cmd = build_probe_command(source, config.ffprobe_binary)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.warning(f"Failed to run `{config.ffprobe_binary}`: {e}")
        return ProbeResult()

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"ffprobe timed out after {timeout}s on {source}")
        process.kill()
        await process.wait()
        return ProbeResult()

    if process.returncode != 0:
        logger.warning(
            f"ffprobe failed on {source}: {stderr.decode(errors='replace').strip()}"
        )
        return ProbeResult()

    try:
        result = parse_probe_output(stdout.decode(errors="replace"))
    except ValueError as e:
        logger.warning(f"Unreadable ffprobe output for {source}: {e}")
        return ProbeResult()

    logger.debug(f"Probed {source}: {result}")
    return result
