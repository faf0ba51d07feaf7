"""Promptable segmentation over video files and live cameras.

Frames are decoded by an external ffmpeg process (or captured from a V4L2
camera), segmented at a reduced cadence, annotated, and shown in a window
and/or re-encoded by a second ffmpeg process.

Example:
    >>> from segment_stream import FFmpegDecoder, StreamPipeline
    >>> decoder = await FFmpegDecoder.spawn("input.mp4", 1280, 720)
    >>> pipeline = StreamPipeline(decoder, model, annotator, prompts)
    >>> await pipeline.run()
"""

__version__ = "0.1.0"

from segment_stream.errors import (
    CaptureError,
    ExternalProcessError,
    LaunchError,
    SizeError,
    StreamError,
    StreamIOError,
    TruncatedStreamError,
)
from segment_stream.video import Frame, FFmpegDecoder, FFmpegEncoder, VideoInfo
from segment_stream.ml import DetectionAnnotator, MockSegmenter, Prompt
from segment_stream.video.pipeline import PipelineConfig, StreamPipeline

__all__ = [
    "__version__",
    # Errors
    "StreamError",
    "LaunchError",
    "TruncatedStreamError",
    "SizeError",
    "StreamIOError",
    "ExternalProcessError",
    "CaptureError",
    # Video
    "Frame",
    "VideoInfo",
    "FFmpegDecoder",
    "FFmpegEncoder",
    # ML
    "Prompt",
    "MockSegmenter",
    "DetectionAnnotator",
    # Pipeline
    "PipelineConfig",
    "StreamPipeline",
]
