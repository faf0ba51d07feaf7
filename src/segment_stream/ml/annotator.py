"""Drawing segmentation results onto RGB frames with OpenCV."""

import logging
from typing import Dict, Sequence, Tuple

import cv2
import numpy as np

from segment_stream.ml.types import Detection, Prompt, SegmentationResult
from segment_stream.video.types import Frame

logger = logging.getLogger(__name__)

Color = Tuple[int, int, int]

# RGB, since frames are RGB
PALETTE: Sequence[Color] = (
    (255, 56, 56),
    (255, 157, 151),
    (255, 112, 31),
    (255, 178, 29),
    (207, 210, 49),
    (72, 249, 10),
    (26, 147, 52),
    (0, 212, 187),
    (44, 153, 168),
    (0, 194, 255),
)
POSITIVE_PROMPT_COLOR: Color = (0, 255, 0)
NEGATIVE_PROMPT_COLOR: Color = (255, 0, 0)


class DetectionAnnotator:
    """Draws boxes, labels, masks and prompt boxes onto frames.

    Example:
        >>> annotator = DetectionAnnotator(show_mask=True)
        >>> annotated = annotator.annotate(frame, result, prompts)
    """

    def __init__(
        self,
        show_mask: bool = False,
        mask_alpha: float = 0.4,
        thickness: int = 2,
    ) -> None:
        """Initialize annotator.

        Args:
            show_mask: Blend masks and outline their largest contour
            mask_alpha: Mask opacity (0.0 - 1.0)
            thickness: Line thickness for boxes and contours
        """
        if not 0.0 <= mask_alpha <= 1.0:
            raise ValueError(f"mask_alpha must be 0-1, got {mask_alpha}")
        self.show_mask = show_mask
        self.mask_alpha = mask_alpha
        self.thickness = thickness
        self._label_colors: Dict[str, Color] = {}

    def annotate(
        self, frame: Frame, result: SegmentationResult, prompts: Sequence[Prompt]
    ) -> Frame:
        """Draw ``result`` and ``prompts`` on a copy of ``frame``.

        Returns:
            New annotated frame; the input frame is left untouched
        """
        out = frame.copy()
        canvas = out.data

        for detection in result.detections:
            color = self._color_for(detection.label)
            if self.show_mask and detection.mask is not None:
                self._draw_mask(canvas, detection.mask, color)
            self._draw_box(canvas, detection, color)

        for prompt in prompts:
            for box in prompt.boxes:
                x1, y1, x2, y2 = (int(round(v)) for v in box.xyxy)
                color = POSITIVE_PROMPT_COLOR if box.positive else NEGATIVE_PROMPT_COLOR
                cv2.rectangle(canvas, (x1, y1), (x2, y2), color, 1, cv2.LINE_AA)

        return out

    def _color_for(self, label: str) -> Color:
        if label not in self._label_colors:
            self._label_colors[label] = PALETTE[len(self._label_colors) % len(PALETTE)]
        return self._label_colors[label]

    def _draw_box(self, canvas: np.ndarray, detection: Detection, color: Color) -> None:
        x1, y1, x2, y2 = (int(round(v)) for v in detection.box)
        cv2.rectangle(canvas, (x1, y1), (x2, y2), color, self.thickness, cv2.LINE_AA)

        text = f"{detection.label} {detection.score:.2f}".strip()
        cv2.putText(
            canvas,
            text,
            (x1, max(y1 - 6, 12)),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            color,
            1,
            cv2.LINE_AA,
        )

    def _draw_mask(self, canvas: np.ndarray, mask: np.ndarray, color: Color) -> None:
        if mask.shape[:2] != canvas.shape[:2]:
            logger.debug(
                f"Skipping mask of shape {mask.shape} for frame {canvas.shape[:2]}"
            )
            return

        region = mask.astype(bool)
        if not region.any():
            return

        tint = np.array(color, dtype=np.float32)
        blended = canvas[region] * (1.0 - self.mask_alpha) + tint * self.mask_alpha
        canvas[region] = blended.astype(np.uint8)

        contours, _ = cv2.findContours(
            region.astype(np.uint8), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )
        if contours:
            largest = max(contours, key=cv2.contourArea)
            cv2.polylines(canvas, [largest], True, color, self.thickness, cv2.LINE_AA)
