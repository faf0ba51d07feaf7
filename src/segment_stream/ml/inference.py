"""Segmentation model loading and a mock model for testing.

Real models are plugged in through ``ModelConfig.factory``, a
``module:callable`` path. The callable receives the ``ModelConfig`` and
returns an object implementing ``SegmenterProtocol``.
"""

import asyncio
import importlib
import logging
import time
from typing import List, Sequence

import numpy as np

from segment_stream.ml.types import (
    Detection,
    ModelConfig,
    Prompt,
    SegmentationResult,
    SegmenterProtocol,
)
from segment_stream.video.types import Frame

logger = logging.getLogger(__name__)


class MockSegmenter:
    """Mock segmentation model for testing without model weights.

    Produces deterministic detections: one centered box per text prompt and
    one detection per positive exemplar box, all with ``fixed_score``.

    Example:
        >>> model = MockSegmenter(ModelConfig(), fixed_score=0.9)
        >>> await model.initialize()
        >>> results = await model.predict([frame], prompts)
    """

    def __init__(
        self,
        config: ModelConfig,
        fixed_score: float = 0.9,
        latency_sec: float = 0.0,
    ) -> None:
        """Initialize mock model.

        Args:
            config: Model configuration
            fixed_score: Score assigned to every detection
            latency_sec: Simulated inference time per batch
        """
        self._config = config
        self._fixed_score = fixed_score
        self._latency_sec = latency_sec
        self._initialized = False
        self.calls = 0

    async def initialize(self) -> None:
        """Initialize the mock model."""
        logger.info(f"Initializing mock segmenter ({self._config.task})")
        self._initialized = True

    async def predict(
        self, frames: Sequence[Frame], prompts: Sequence[Prompt]
    ) -> List[SegmentationResult]:
        """Run mock segmentation.

        Raises:
            RuntimeError: If not initialized
        """
        if not self._initialized:
            raise RuntimeError("Model not initialized")

        start = time.time()
        if self._latency_sec > 0:
            await asyncio.sleep(self._latency_sec)

        self.calls += 1
        results = []
        for frame in frames:
            detections = []
            for prompt in prompts:
                detections.extend(self._detect(frame, prompt))
            results.append(
                SegmentationResult(
                    detections=[
                        d for d in detections if d.score >= self._config.confidence
                    ],
                    frame_number=frame.metadata.frame_number,
                    inference_time_ms=(time.time() - start) * 1000,
                )
            )
        return results

    def _detect(self, frame: Frame, prompt: Prompt) -> List[Detection]:
        width, height = frame.width, frame.height
        boxes = []

        if prompt.text:
            boxes.append((width / 4, height / 4, width * 3 / 4, height * 3 / 4))
        boxes.extend(b.xyxy for b in prompt.boxes if b.positive)

        detections = []
        for x1, y1, x2, y2 in boxes:
            mask = np.zeros((height, width), dtype=bool)
            mask[int(y1):int(y2), int(x1):int(x2)] = True
            detections.append(
                Detection(
                    box=(x1, y1, x2, y2),
                    score=self._fixed_score,
                    label=prompt.label,
                    mask=mask,
                )
            )
        return detections

    @property
    def name(self) -> str:
        return f"mock-{self._config.task}"

    @property
    def is_ready(self) -> bool:
        return self._initialized


def load_segmenter(config: ModelConfig) -> SegmenterProtocol:
    """Create the segmentation model described by ``config``.

    Returns:
        Uninitialized model; call ``initialize()`` before use

    Raises:
        ValueError: If the factory path is malformed
        RuntimeError: If the factory cannot be imported or returns no model
    """
    if not config.factory:
        logger.warning("No model factory configured, using mock segmenter")
        return MockSegmenter(config)

    module_name, sep, attr = config.factory.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"Model factory must look like 'module:callable', got '{config.factory}'"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise RuntimeError(f"Cannot import model module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise RuntimeError(f"'{config.factory}' is not a callable model factory")

    model = factory(config)
    if not hasattr(model, "predict"):
        raise RuntimeError(f"'{config.factory}' did not return a segmentation model")

    logger.info(f"Loaded model from {config.factory}")
    return model
