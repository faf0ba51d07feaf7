"""Tests for model loading and the mock segmenter."""

import sys
import types

import numpy as np
import pytest

from conftest import make_frame
from segment_stream.ml.inference import MockSegmenter, load_segmenter
from segment_stream.ml.types import ModelConfig, Prompt, PromptBox


class TestMockSegmenter:
    """Test mock segmenter for testing without model weights."""

    @pytest.mark.asyncio
    async def test_initialization(self):
        model = MockSegmenter(ModelConfig())
        assert not model.is_ready

        await model.initialize()

        assert model.is_ready
        assert model.name == "mock-sam3-image"

    @pytest.mark.asyncio
    async def test_predict_before_initialize(self):
        model = MockSegmenter(ModelConfig())

        with pytest.raises(RuntimeError):
            await model.predict([make_frame()], [Prompt(text="cat")])

    @pytest.mark.asyncio
    async def test_text_prompt(self):
        """Test a text prompt yields one centered detection with a mask."""
        model = MockSegmenter(ModelConfig())
        await model.initialize()
        frame = make_frame(64, 48, frame_number=5)

        results = await model.predict([frame], [Prompt(text="cat")])

        assert len(results) == 1
        result = results[0]
        assert result.frame_number == 5
        assert len(result) == 1
        detection = result.detections[0]
        assert detection.box == (16, 12, 48, 36)
        assert detection.label == "cat"
        assert detection.mask.shape == (48, 64)
        assert detection.mask.sum() == 32 * 24

    @pytest.mark.asyncio
    async def test_box_prompts(self):
        """Test positive boxes become detections and negative ones do not."""
        model = MockSegmenter(ModelConfig())
        await model.initialize()
        prompt = Prompt(
            boxes=(PromptBox(0, 0, 8, 8), PromptBox(10, 10, 4, 4, positive=False))
        )

        result = (await model.predict([make_frame()], [prompt]))[0]

        assert [d.box for d in result.detections] == [(0, 0, 8, 8)]
        assert result.detections[0].label == "visual"

    @pytest.mark.asyncio
    async def test_confidence_filter(self):
        model = MockSegmenter(ModelConfig(confidence=0.95), fixed_score=0.9)
        await model.initialize()

        result = (await model.predict([make_frame()], [Prompt(text="cat")]))[0]

        assert len(result) == 0

    @pytest.mark.asyncio
    async def test_batch(self):
        model = MockSegmenter(ModelConfig())
        await model.initialize()

        results = await model.predict(
            [make_frame(frame_number=1), make_frame(frame_number=2)],
            [Prompt(text="a"), Prompt(text="b")],
        )

        assert [r.frame_number for r in results] == [1, 2]
        assert all(len(r) == 2 for r in results)
        assert model.calls == 1


class TestLoadSegmenter:
    """Test model factory resolution."""

    def test_no_factory_uses_mock(self, caplog):
        model = load_segmenter(ModelConfig())

        assert isinstance(model, MockSegmenter)
        assert "mock segmenter" in caplog.text

    def test_factory(self, monkeypatch):
        """Test a module:callable factory receives the config."""
        built = {}

        def build(config):
            built["config"] = config
            return MockSegmenter(config, fixed_score=0.7)

        module = types.ModuleType("fake_models")
        module.build = build
        monkeypatch.setitem(sys.modules, "fake_models", module)
        config = ModelConfig(factory="fake_models:build", task="sam3-tracker")

        model = load_segmenter(config)

        assert built["config"] is config
        assert model.name == "mock-sam3-tracker"

    @pytest.mark.parametrize("factory", ["no_colon", ":build", "module:"])
    def test_malformed_factory(self, factory):
        with pytest.raises(ValueError):
            load_segmenter(ModelConfig(factory=factory))

    def test_unimportable_module(self):
        with pytest.raises(RuntimeError, match="import"):
            load_segmenter(ModelConfig(factory="segment_stream_no_such_module:build"))

    def test_missing_callable(self, monkeypatch):
        module = types.ModuleType("fake_models_empty")
        monkeypatch.setitem(sys.modules, "fake_models_empty", module)

        with pytest.raises(RuntimeError, match="not a callable"):
            load_segmenter(ModelConfig(factory="fake_models_empty:build"))

    def test_factory_returning_non_model(self, monkeypatch):
        module = types.ModuleType("fake_models_bad")
        module.build = lambda config: object()
        monkeypatch.setitem(sys.modules, "fake_models_bad", module)

        with pytest.raises(RuntimeError, match="did not return"):
            load_segmenter(ModelConfig(factory="fake_models_bad:build"))
