"""Types and protocols for promptable segmentation.

The segmentation model and the annotator are external collaborators; this
module fixes the shapes that flow between them and the pipeline.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from pydantic import BaseModel, Field

from segment_stream.video.types import Frame


@dataclass(frozen=True)
class PromptBox:
    """A box prompt in pixel coordinates (top-left corner plus size)."""

    x: float
    y: float
    w: float
    h: float
    positive: bool = True

    def __post_init__(self) -> None:
        if self.w <= 0 or self.h <= 0:
            raise ValueError(f"Prompt box must have positive size, got {self.w}x{self.h}")

    @property
    def xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x + self.w, self.y + self.h)


@dataclass(frozen=True)
class Prompt:
    """A text and/or visual prompt for the segmentation model.

    Attributes:
        text: Concept to segment, e.g. "playing card"
        boxes: Exemplar boxes marking positive or negative examples
    """

    text: Optional[str] = None
    boxes: Tuple[PromptBox, ...] = ()

    def __post_init__(self) -> None:
        if not self.text and not self.boxes:
            raise ValueError("Prompt needs text or at least one box")

    @property
    def label(self) -> str:
        return self.text or "visual"


@dataclass
class Detection:
    """One segmented instance.

    Attributes:
        box: Bounding box as (x1, y1, x2, y2) in pixels
        score: Confidence score (0.0 - 1.0)
        label: Prompt label that produced the detection
        mask: Optional boolean mask of shape (H, W)
    """

    box: Tuple[float, float, float, float]
    score: float
    label: str = ""
    mask: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Score must be 0-1, got {self.score}")


@dataclass
class SegmentationResult:
    """Detections for one frame."""

    detections: List[Detection] = field(default_factory=list)
    frame_number: int = 0
    inference_time_ms: float = 0.0

    def __len__(self) -> int:
        return len(self.detections)


class ModelConfig(BaseModel):
    """Configuration for the segmentation model."""

    factory: Optional[str] = Field(
        None, description="Model factory as 'module:callable'; mock model if unset"
    )
    task: str = Field("sam3-image", description="Model task (sam3-image, sam3-tracker)")
    device: str = Field("cpu:0", description="Execution device")
    dtype: str = Field("q4f16", description="Weight dtype")
    confidence: float = Field(
        0.5, ge=0.0, le=1.0, description="Minimum score for a detection"
    )
    show_mask: bool = Field(False, description="Draw segmentation masks")


class SegmenterProtocol(Protocol):
    """Protocol for segmentation model implementations."""

    async def initialize(self) -> None:
        """Load the model.

        Raises:
            RuntimeError: If the model cannot be loaded
        """
        ...

    async def predict(
        self, frames: Sequence[Frame], prompts: Sequence[Prompt]
    ) -> List[SegmentationResult]:
        """Segment a batch of frames.

        Args:
            frames: Frames to segment
            prompts: Prompts applied to every frame

        Returns:
            One result per input frame, in order
        """
        ...

    @property
    def name(self) -> str:
        """Get a short model identifier (used for output directories)."""
        ...


class AnnotatorProtocol(Protocol):
    """Protocol for drawing results onto frames."""

    def annotate(
        self, frame: Frame, result: SegmentationResult, prompts: Sequence[Prompt]
    ) -> Frame:
        """Draw detections and prompts onto a copy of ``frame``."""
        ...
