"""Tests for result annotation."""

import numpy as np
import pytest

from conftest import make_frame
from segment_stream.ml.annotator import PALETTE, DetectionAnnotator
from segment_stream.ml.types import Detection, Prompt, PromptBox, SegmentationResult


class TestDetectionAnnotator:
    """Test drawing onto frames."""

    def test_input_frame_untouched(self):
        """Test annotation draws on a copy."""
        frame = make_frame(64, 48)
        result = SegmentationResult(
            detections=[Detection(box=(10, 10, 40, 30), score=0.9, label="cat")]
        )

        annotated = DetectionAnnotator().annotate(frame, result, [])

        assert frame.data.max() == 0
        assert annotated.data.max() > 0
        assert annotated.shape == frame.shape

    def test_box_drawn_in_label_color(self):
        frame = make_frame(64, 48)
        result = SegmentationResult(
            detections=[Detection(box=(10, 10, 40, 30), score=0.9, label="cat")]
        )

        annotated = DetectionAnnotator().annotate(frame, result, [])

        # Left edge of the box; anti-aliasing may soften exact values
        edge = annotated.data[18:23, 8:13]
        assert edge[..., 0].max() > 200
        assert edge[..., 0].max() > edge[..., 1].max()

    def test_stable_label_colors(self):
        annotator = DetectionAnnotator()

        first = annotator._color_for("cat")
        second = annotator._color_for("dog")

        assert annotator._color_for("cat") == first == PALETTE[0]
        assert first != second

    def test_prompt_boxes(self):
        """Test positive and negative prompt boxes use distinct colors."""
        frame = make_frame(64, 48)
        prompt = Prompt(
            boxes=(
                PromptBox(2, 2, 10, 10, positive=True),
                PromptBox(30, 20, 10, 10, positive=False),
            )
        )

        annotated = DetectionAnnotator().annotate(frame, SegmentationResult(), [prompt])

        positive_edge = annotated.data[4:10, 0:5]
        negative_edge = annotated.data[23:28, 28:33]
        assert positive_edge[..., 1].max() > 100
        assert positive_edge[..., 0].max() < 50
        assert negative_edge[..., 0].max() > 100
        assert negative_edge[..., 1].max() < 50

    def test_mask_blended(self):
        """Test masks tint the covered region only when enabled."""
        frame = make_frame(64, 48)
        mask = np.zeros((48, 64), dtype=bool)
        mask[20:30, 20:40] = True
        result = SegmentationResult(
            detections=[Detection(box=(0, 0, 1, 1), score=0.9, label="x", mask=mask)]
        )

        plain = DetectionAnnotator(show_mask=False).annotate(frame, result, [])
        masked = DetectionAnnotator(show_mask=True).annotate(frame, result, [])

        assert plain.data[25, 30].max() == 0
        assert masked.data[25, 30].max() > 0
        assert masked.data[45, 60].max() == 0

    def test_mismatched_mask_skipped(self):
        frame = make_frame(64, 48)
        result = SegmentationResult(
            detections=[
                Detection(box=(0, 0, 1, 1), score=0.9, mask=np.ones((10, 10), dtype=bool))
            ]
        )

        annotated = DetectionAnnotator(show_mask=True).annotate(frame, result, [])

        assert annotated.data[30, 30].max() == 0

    def test_invalid_alpha(self):
        with pytest.raises(ValueError):
            DetectionAnnotator(mask_alpha=1.5)
