"""Frame sources, sinks and the process bridges to ffmpeg.

The pipeline driver lives in ``segment_stream.video.pipeline``; it depends on
``segment_stream.ml`` and is not re-exported here.

Example:
    >>> from segment_stream.video import FFmpegDecoder
    >>> async with await FFmpegDecoder.spawn("input.mp4", 640, 360) as decoder:
    ...     frame = await decoder.read_frame()
"""

from segment_stream.video.types import (
    ControlKey,
    DisplayProtocol,
    Frame,
    FrameMetadata,
    FrameSinkProtocol,
    FrameSourceProtocol,
    VideoInfo,
)
from segment_stream.video.color import yuyv_to_rgb
from segment_stream.video.process import FFmpegConfig, ProcessBridge
from segment_stream.video.decoder import FFmpegDecoder
from segment_stream.video.encoder import EncoderConfig, FFmpegEncoder
from segment_stream.video.probe import ProbeResult, probe_video
from segment_stream.video.progress import ProgressTracker, format_hms
from segment_stream.video.cadence import CadenceState, should_infer
from segment_stream.video.capture import CameraConfig, MockCameraCapture, V4L2CameraCapture
from segment_stream.video.output import MockDisplay, OpenCVDisplay

__all__ = [
    # Types
    "ControlKey",
    "DisplayProtocol",
    "Frame",
    "FrameMetadata",
    "FrameSinkProtocol",
    "FrameSourceProtocol",
    "VideoInfo",
    # Conversion
    "yuyv_to_rgb",
    # Process bridges
    "FFmpegConfig",
    "ProcessBridge",
    "FFmpegDecoder",
    "EncoderConfig",
    "FFmpegEncoder",
    "ProbeResult",
    "probe_video",
    # Progress and cadence
    "ProgressTracker",
    "format_hms",
    "CadenceState",
    "should_infer",
    # Capture
    "CameraConfig",
    "MockCameraCapture",
    "V4L2CameraCapture",
    # Output
    "MockDisplay",
    "OpenCVDisplay",
]
