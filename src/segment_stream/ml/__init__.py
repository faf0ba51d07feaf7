"""Promptable segmentation: prompts, model loading and annotation.

Example:
    >>> from segment_stream.ml import ModelConfig, load_segmenter, parse_prompts
    >>> prompts = parse_prompts(["person", "pos:480,290,110,360"])
    >>> model = load_segmenter(ModelConfig())
    >>> await model.initialize()
    >>> results = await model.predict([frame], prompts)
"""

from segment_stream.ml.types import (
    AnnotatorProtocol,
    Detection,
    ModelConfig,
    Prompt,
    PromptBox,
    SegmentationResult,
    SegmenterProtocol,
)
from segment_stream.ml.prompts import parse_prompt, parse_prompt_line, parse_prompts
from segment_stream.ml.inference import MockSegmenter, load_segmenter
from segment_stream.ml.annotator import DetectionAnnotator

__all__ = [
    # Types
    "AnnotatorProtocol",
    "Detection",
    "ModelConfig",
    "Prompt",
    "PromptBox",
    "SegmentationResult",
    "SegmenterProtocol",
    # Prompts
    "parse_prompt",
    "parse_prompt_line",
    "parse_prompts",
    # Models
    "MockSegmenter",
    "load_segmenter",
    # Annotation
    "DetectionAnnotator",
]
