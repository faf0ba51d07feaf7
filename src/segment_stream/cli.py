"""CLI for the segmentation streaming pipeline.

Provides commands for segmenting a video file (viewed in a window or
re-encoded to a new file) and a live camera feed.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import click

from segment_stream.config import AppConfig, apply_overrides, load_config
from segment_stream.errors import StreamError
from segment_stream.ml.annotator import DetectionAnnotator
from segment_stream.ml.inference import load_segmenter
from segment_stream.ml.prompts import parse_prompts
from segment_stream.video.capture import CameraConfig, MockCameraCapture, V4L2CameraCapture
from segment_stream.video.decoder import FFmpegDecoder
from segment_stream.video.encoder import FFmpegEncoder
from segment_stream.video.output import OpenCVDisplay, delay_for_fps
from segment_stream.video.pipeline import PipelineStats, StreamPipeline
from segment_stream.video.probe import probe_video
from segment_stream.video.progress import ProgressTracker

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
MIN_FPS = 0.1
CAMERA_KEY_DELAY_MS = 1


def setup_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level.upper()))


def model_options(func):
    """Options shared by every command that runs the model."""
    options = [
        click.option(
            "-p", "--prompt", "prompts", multiple=True,
            help='Prompt (repeatable): "text", "text;pos:x,y,w,h" or "neg:x,y,w,h"',
        ),
        click.option("--infer-every", type=int, default=None,
                     help="Run inference every N frames (0 disables) [default: 3]"),
        click.option("--conf", type=float, default=None,
                     help="Confidence threshold [default: 0.5]"),
        click.option("--show-mask", is_flag=True, default=None, help="Draw segmentation masks"),
        click.option("--window-scale", type=float, default=None,
                     help="Window scale (1.0 = native resolution)"),
        click.option("--save-dir", type=click.Path(file_okay=False), default=None,
                     help="Directory for saved frames [default: runs/<model>]"),
        click.option("--headless", is_flag=True, default=None, help="Run without a window"),
        click.option("--model", "factory", default=None,
                     help="Model factory as module:callable (mock model if unset)"),
        click.option("--task", default=None, help="Model task [default: sam3-image]"),
        click.option("--device", default=None, help="Execution device [default: cpu:0]"),
        click.option("--dtype", default=None, help="Weight dtype [default: q4f16]"),
        click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
                     help="YAML configuration file"),
        click.option("--log-level", type=click.Choice(LOG_LEVELS, case_sensitive=False),
                     default="INFO", envvar="LOG_LEVEL", show_default=True,
                     help="Logging level (or LOG_LEVEL)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_config(config_path: Optional[str], **overrides) -> AppConfig:
    """Load the configuration file and apply command-line overrides."""
    config = load_config(config_path)
    return apply_overrides(
        config,
        {
            "pipeline.infer_every": overrides.get("infer_every"),
            "pipeline.window_scale": overrides.get("window_scale"),
            "pipeline.save_dir": overrides.get("save_dir"),
            "pipeline.headless": overrides.get("headless"),
            "pipeline.fps": overrides.get("fps"),
            "model.confidence": overrides.get("conf"),
            "model.show_mask": overrides.get("show_mask"),
            "model.factory": overrides.get("factory"),
            "model.task": overrides.get("task"),
            "model.device": overrides.get("device"),
            "model.dtype": overrides.get("dtype"),
        },
    )


def resolve_save_dir(config: AppConfig, save_dir: Optional[str], model_name: str) -> str:
    """Get the snapshot directory; without an explicit one, a per-model subdirectory."""
    if save_dir:
        return save_dir
    return str(Path(config.pipeline.save_dir) / model_name)


def run_command(coro) -> PipelineStats:
    """Run a pipeline coroutine, exiting with status 1 on a pipeline failure."""
    try:
        return asyncio.run(coro)
    except (StreamError, ValueError, FileNotFoundError, RuntimeError) as e:
        logger.error(f"{e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        sys.exit(130)


@click.group()
def cli():
    """Promptable segmentation over video files and live cameras."""
    pass


@cli.command()
@click.argument("input_path", metavar="INPUT")
@click.option("--width", type=int, default=None, help="Output width (requires --height)")
@click.option("--height", type=int, default=None, help="Output height (requires --width)")
@click.option("--fps", type=float, default=None, help="Override the probed frame rate")
@click.option("--save-video", type=click.Path(dir_okay=False), default=None,
              help="Write the annotated video here (disables the window)")
@model_options
def video(input_path, width, height, fps, save_video, prompts, log_level, config_path,
          save_dir, **options):
    """Segment a video file decoded by ffmpeg."""
    setup_logging(log_level)

    async def _video() -> PipelineStats:
        if (width is None) != (height is None):
            raise ValueError("Specify both --width and --height (or neither)")

        parsed_prompts = parse_prompts(prompts)
        config = build_config(config_path, save_dir=save_dir, **options)

        probed = await probe_video(input_path, config.ffmpeg)
        if width is not None:
            out_w, out_h, rescale = width, height, True
        elif probed.width is not None and probed.height is not None:
            out_w, out_h, rescale = probed.width, probed.height, False
        else:
            raise ValueError(
                f"Could not determine dimensions of {input_path}; "
                "pass --width and --height"
            )

        stream_fps = max(fps if fps is not None else (probed.fps or config.pipeline.fps), MIN_FPS)
        logger.info(f"Video: {input_path} ({out_w}x{out_h}, {stream_fps:.3f} fps)")

        total_frames = probed.estimate_total_frames(stream_fps)
        if total_frames is not None:
            logger.info(f"Frames: ~{total_frames}")

        segmenter = load_segmenter(config.model)
        pipeline_config = config.pipeline.model_copy(
            update={
                "fps": stream_fps,
                "save_dir": resolve_save_dir(config, save_dir, segmenter.name),
            }
        )

        display = None
        if save_video is None and not pipeline_config.headless:
            display = OpenCVDisplay("segment-stream-video", pipeline_config.window_scale)
        if save_video is not None:
            logger.info(f"Writing annotated video to: {save_video}")

        decoder = await FFmpegDecoder.spawn(input_path, out_w, out_h, rescale, config.ffmpeg)
        async with decoder:
            encoder = None
            if save_video is not None:
                encoder = await FFmpegEncoder.spawn(
                    save_video, out_w, out_h, stream_fps, config.encoder
                )

            pipeline = StreamPipeline(
                decoder,
                segmenter,
                DetectionAnnotator(show_mask=config.model.show_mask),
                parsed_prompts,
                config=pipeline_config,
                encoder=encoder,
                display=display,
                progress=ProgressTracker(
                    enabled=display is None,
                    fps=stream_fps,
                    total_frames=total_frames,
                ),
                key_delay_ms=delay_for_fps(stream_fps),
            )
            try:
                await pipeline.initialize()
                return await pipeline.run()
            finally:
                if encoder is not None and not encoder.is_finished:
                    await encoder.kill()

    stats = run_command(_video())
    click.echo(
        f"Processed {stats.frames_processed} frames "
        f"({stats.inference_runs} inference runs)"
    )


@cli.command()
@click.option("--camera", "camera_index", type=int, default=0, show_default=True,
              help="Camera index (/dev/videoN)")
@click.option("--width", type=int, default=640, show_default=True,
              help="Capture width (best effort)")
@click.option("--height", type=int, default=480, show_default=True,
              help="Capture height (best effort)")
@click.option("--mock-camera", is_flag=True, help="Use a synthetic test pattern camera")
@click.option("--max-frames", type=int, default=None,
              help="Stop after N frames (mock camera only)")
@model_options
def camera(camera_index, width, height, mock_camera, max_frames, prompts, log_level,
           config_path, save_dir, **options):
    """Segment a live V4L2 camera feed."""
    setup_logging(log_level)

    async def _camera() -> PipelineStats:
        parsed_prompts = parse_prompts(prompts)
        config = build_config(config_path, save_dir=save_dir, **options)

        segmenter = load_segmenter(config.model)

        camera_config = CameraConfig(index=camera_index, width=width, height=height)
        if mock_camera:
            source = MockCameraCapture(camera_config, max_frames=max_frames)
        else:
            source = V4L2CameraCapture(camera_config)

        info = await source.initialize()

        pipeline_config = config.pipeline.model_copy(
            update={
                "fps": info.fps,
                "save_dir": resolve_save_dir(config, save_dir, segmenter.name),
            }
        )

        display = None
        if not pipeline_config.headless:
            display = OpenCVDisplay("segment-stream-camera", pipeline_config.window_scale)

        pipeline = StreamPipeline(
            source,
            segmenter,
            DetectionAnnotator(show_mask=config.model.show_mask),
            parsed_prompts,
            config=pipeline_config,
            display=display,
            key_delay_ms=CAMERA_KEY_DELAY_MS,
        )
        try:
            await pipeline.initialize()
        except Exception:
            await source.kill()
            raise
        return await pipeline.run()

    stats = run_command(_camera())
    click.echo(
        f"Processed {stats.frames_processed} frames "
        f"({stats.inference_runs} inference runs)"
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Console script entry point."""
    cli(args=argv)


if __name__ == "__main__":
    main()
