"""Inference cadence: run the model every Nth frame, reuse the result between.

Example:
    >>> state = CadenceState()
    >>> should_infer(3, 3)
    True
    >>> state.select(raw_frame) is raw_frame  # nothing annotated yet
    True
"""

from dataclasses import dataclass
from typing import Optional

from segment_stream.video.types import Frame


def should_infer(frame_idx: int, interval: int) -> bool:
    """Decide whether inference runs on a frame.

    Args:
        frame_idx: 1-based frame index
        interval: Run every ``interval`` frames; 0 disables inference

    Returns:
        True if the model should run on this frame
    """
    return interval > 0 and frame_idx % interval == 0


@dataclass
class CadenceState:
    """Holds the most recent annotated frame between inference runs."""

    last_annotated: Optional[Frame] = None

    def record(self, annotated: Frame) -> Frame:
        """Store a freshly annotated frame and return it for display."""
        self.last_annotated = annotated
        return annotated

    def select(self, raw: Frame) -> Frame:
        """Get the frame to display on a frame where inference is skipped."""
        if self.last_annotated is not None:
            return self.last_annotated
        return raw
