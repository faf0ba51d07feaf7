"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest

from segment_stream.ml.types import ModelConfig, Prompt, PromptBox
from segment_stream.video.types import Frame, FrameMetadata


def make_frame(
    width: int = 64,
    height: int = 48,
    value: int = 0,
    frame_number: int = 0,
) -> Frame:
    """Build a solid RGB frame."""
    data = np.full((height, width, 3), value, dtype=np.uint8)
    metadata = FrameMetadata(width=width, height=height, frame_number=frame_number)
    return Frame(data=data, metadata=metadata)


def python_command(script: str) -> List[str]:
    """Build a command running ``script`` in a child Python interpreter.

    Stands in for ffmpeg in bridge tests: the child plays the role of a raw
    frame producer or consumer.
    """
    return [sys.executable, "-c", script]


class FrameListSource:
    """In-memory frame source recording how it was shut down."""

    def __init__(self, frames: List[Frame], error: Optional[Exception] = None) -> None:
        self._frames = list(frames)
        self._error = error
        self.reads = 0
        self.finished = False
        self.killed = False

    async def read_frame(self) -> Optional[Frame]:
        if not self._frames:
            if self._error is not None:
                raise self._error
            return None
        self.reads += 1
        return self._frames.pop(0)

    async def finish(self) -> None:
        self.finished = True

    async def kill(self) -> None:
        self.killed = True


class RecordingSink:
    """In-memory frame sink recording writes and shutdown."""

    def __init__(self, error: Optional[Exception] = None, fail_on_finish: Optional[Exception] = None) -> None:
        self.frames: List[Frame] = []
        self._error = error
        self._fail_on_finish = fail_on_finish
        self.finished = False
        self.killed = False

    async def write_frame(self, frame: Frame) -> None:
        if self._error is not None:
            raise self._error
        self.frames.append(frame)

    async def finish(self) -> None:
        self.finished = True
        if self._fail_on_finish is not None:
            raise self._fail_on_finish

    async def kill(self) -> None:
        self.killed = True


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "slow: tests that spawn many child processes")


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def frame() -> Frame:
    """Provide a small mid-gray frame."""
    return make_frame(64, 48, value=128)


@pytest.fixture
def text_prompt() -> Prompt:
    return Prompt(text="person")


@pytest.fixture
def box_prompt() -> Prompt:
    return Prompt(boxes=(PromptBox(x=8, y=8, w=16, h=16),))


@pytest.fixture
def model_config() -> ModelConfig:
    return ModelConfig(confidence=0.5)


@pytest.fixture
def config_file(temp_dir) -> Path:
    """Provide a YAML configuration file."""
    path = temp_dir / "config.yaml"
    path.write_text(
        "encoder:\n"
        "  crf: 18\n"
        "pipeline:\n"
        "  infer_every: 5\n"
        "  save_dir: snapshots\n"
        "model:\n"
        "  confidence: 0.25\n"
        "  show_mask: true\n"
    )
    return path
