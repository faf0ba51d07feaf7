"""Segmentation streaming pipeline.

This module implements the driver loop that pulls frames from a source, runs
the segmentation model at a reduced cadence, and forwards the displayed frame
to an encoder and/or a display window.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from pydantic import BaseModel, Field

from segment_stream.ml.prompts import read_prompt_update
from segment_stream.ml.types import AnnotatorProtocol, Prompt, SegmenterProtocol
from segment_stream.video.cadence import CadenceState, should_infer
from segment_stream.video.output import delay_for_fps, save_frame
from segment_stream.video.progress import ProgressTracker
from segment_stream.video.types import (
    DEFAULT_FPS,
    ControlKey,
    DisplayProtocol,
    Frame,
    FrameSinkProtocol,
    FrameSourceProtocol,
)

logger = logging.getLogger(__name__)

PromptReader = Callable[[], Optional[List[Prompt]]]


class PipelineConfig(BaseModel):
    """Configuration for the streaming pipeline."""

    infer_every: int = Field(
        3, ge=0, description="Run the model every N frames (0 disables inference)"
    )
    fps: float = Field(DEFAULT_FPS, gt=0, description="Playback frame rate")
    save_dir: str = Field("runs", description="Directory for saved frames")
    window_scale: float = Field(1.0, gt=0, description="Display window scale")
    headless: bool = Field(False, description="Run without a display window")


@dataclass
class PipelineStats:
    """Counters for one pipeline run."""

    frames_processed: int = 0
    inference_runs: int = 0
    frames_written: int = 0
    frames_saved: int = 0
    prompt_updates: int = 0
    stopped_early: bool = False
    elapsed_seconds: float = 0.0

    @property
    def average_fps(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.frames_processed / self.elapsed_seconds


class StreamPipeline:
    """Single-task frame loop: source -> cadence -> model -> sinks.

    Each iteration reads one frame, decides whether to run the model on it,
    updates progress, writes the displayed frame to the encoder, then shows
    it and handles keyboard controls. The loop ends on end of stream, window
    close, the quit key, or ``stop()``.

    On normal completion the source is finished (its exit status checked);
    when stopped early it is killed. The encoder is finished in both cases.
    If anything raises, every bridge is killed and the error propagates.

    Example:
        >>> decoder = await FFmpegDecoder.spawn("input.mp4", 1280, 720)
        >>> pipeline = StreamPipeline(decoder, model, annotator, prompts,
        ...                           display=OpenCVDisplay())
        >>> await pipeline.initialize()
        >>> stats = await pipeline.run()
    """

    def __init__(
        self,
        source: FrameSourceProtocol,
        segmenter: SegmenterProtocol,
        annotator: AnnotatorProtocol,
        prompts: Sequence[Prompt],
        config: Optional[PipelineConfig] = None,
        encoder: Optional[FrameSinkProtocol] = None,
        display: Optional[DisplayProtocol] = None,
        progress: Optional[ProgressTracker] = None,
        prompt_reader: Optional[PromptReader] = None,
        key_delay_ms: Optional[int] = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            source: Frame source (decoder, camera or test double)
            segmenter: Segmentation model
            annotator: Draws model results onto frames
            prompts: Initial prompts
            config: Pipeline configuration
            encoder: Optional sink receiving every displayed frame
            display: Optional interactive window
            progress: Optional progress reporter
            prompt_reader: Blocking callable returning replacement prompts
            key_delay_ms: Key polling delay; derived from ``config.fps`` if unset
        """
        if not prompts:
            raise ValueError("Pipeline needs at least one prompt")

        self.source = source
        self.segmenter = segmenter
        self.annotator = annotator
        self.prompts: List[Prompt] = list(prompts)
        self.config = config or PipelineConfig()
        self.encoder = encoder
        self.display = display
        self.progress = progress
        self._prompt_reader = prompt_reader or read_prompt_update
        self._key_delay_ms = (
            key_delay_ms if key_delay_ms is not None else delay_for_fps(self.config.fps)
        )

        self._cadence = CadenceState()
        self._stop_event = asyncio.Event()
        self._running = False
        self._stats = PipelineStats()
        self._start_time: Optional[float] = None

    async def initialize(self) -> None:
        """Load the model and open the display."""
        logger.info(
            f"Initializing pipeline: infer every {self.config.infer_every} frames, "
            f"{len(self.prompts)} prompt(s)"
        )
        await self.segmenter.initialize()
        if self.display is not None:
            await self.display.initialize()
            logger.info("Controls: ESC/Q quit, P update prompt, S save frame")
        logger.info("Pipeline initialized successfully")

    async def run(self) -> PipelineStats:
        """Run until the source is exhausted or the pipeline is stopped.

        Returns:
            Statistics for the run

        Raises:
            StreamError: On any decoder, encoder or capture failure
        """
        logger.info("Starting pipeline")

        self._running = True
        self._stop_event.clear()
        self._stats = PipelineStats()
        self._start_time = time.time()

        try:
            await self._loop()
        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Pipeline failed after {self._stats.frames_processed} frames: {e}")
            await self._kill_all()
            raise
        finally:
            self._running = False
            self._stats.elapsed_seconds = time.time() - self._start_time
            if self.display is not None:
                await self.display.close()

        await self._shutdown()
        self._log_stats()
        return self._stats

    async def _loop(self) -> None:
        frame_idx = 0

        while not self._stop_event.is_set():
            frame = await self.source.read_frame()
            if frame is None:
                logger.info(f"End of stream after {frame_idx} frames")
                return

            frame_idx += 1
            self._stats.frames_processed = frame_idx
            shown = await self.process_frame(frame, frame_idx)

            if self.progress is not None:
                self.progress.update(frame_idx)

            if self.encoder is not None:
                await self.encoder.write_frame(shown)
                self._stats.frames_written += 1

            if self.display is not None:
                if self.display.is_closed():
                    logger.info("Display window closed")
                    break

                await self.display.show(shown)
                key = await self.display.wait_key(self._key_delay_ms)
                if key is ControlKey.QUIT:
                    logger.info("Quit requested")
                    break
                if key is not None:
                    await self._handle_control(key)

        self._stats.stopped_early = True

    async def process_frame(self, frame: Frame, frame_idx: int) -> Frame:
        """Get the frame to forward for 1-based ``frame_idx``.

        Runs the model and annotator when the cadence selects this frame,
        otherwise reuses the last annotated frame (or the raw frame if none).
        """
        if not should_infer(frame_idx, self.config.infer_every):
            return self._cadence.select(frame)

        results = await self.segmenter.predict([frame], self.prompts)
        self._stats.inference_runs += 1

        annotated = self.annotator.annotate(frame, results[0], self.prompts)
        logger.debug(
            f"Frame {frame_idx}: {len(results[0])} detections "
            f"in {results[0].inference_time_ms:.1f}ms"
        )
        return self._cadence.record(annotated)

    async def _handle_control(self, key: ControlKey) -> None:
        if key is ControlKey.SAVE:
            last = self._cadence.last_annotated
            if last is None:
                logger.info("No annotated frame to save yet")
                return
            save_frame(last, self.config.save_dir)
            self._stats.frames_saved += 1

        elif key is ControlKey.UPDATE_PROMPTS:
            # Reading stdin blocks; the loop is paused until a line arrives
            loop = asyncio.get_event_loop()
            new_prompts = await loop.run_in_executor(None, self._prompt_reader)
            if new_prompts:
                self.prompts = list(new_prompts)
                self._stats.prompt_updates += 1
                logger.info(f"Updated prompts: {self.prompts}")

    async def _shutdown(self) -> None:
        frames = self._stats.frames_processed
        try:
            if self.encoder is not None:
                await self.encoder.finish()
        except (Exception, asyncio.CancelledError):
            await self.source.kill()
            raise

        if self.progress is not None:
            self.progress.finish(frames)

        if self._stats.stopped_early:
            await self.source.kill()
        else:
            await self.source.finish()

    async def _kill_all(self) -> None:
        if self.encoder is not None:
            await self.encoder.kill()
        await self.source.kill()

    async def stop(self) -> None:
        """Stop the pipeline after the current iteration."""
        if self._running:
            logger.info("Stopping pipeline...")
            self._stop_event.set()

    def _log_stats(self) -> None:
        stats = self._stats
        logger.info(
            f"Pipeline stats: {stats.frames_processed} frames, "
            f"{stats.inference_runs} inference runs, "
            f"{stats.frames_written} written, "
            f"{stats.average_fps:.1f} FPS"
            + (" (stopped early)" if stats.stopped_early else "")
        )

    def get_stats(self) -> PipelineStats:
        """Get statistics of the current or last run."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._running
