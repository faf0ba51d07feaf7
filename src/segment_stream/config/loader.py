"""Configuration loading from YAML files and command-line overrides."""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, Field

from segment_stream.ml.types import ModelConfig
from segment_stream.video.encoder import EncoderConfig
from segment_stream.video.pipeline import PipelineConfig
from segment_stream.video.process import FFmpegConfig

logger = logging.getLogger(__name__)


class AppConfig(BaseModel):
    """Top-level application configuration.

    Example YAML::

        ffmpeg:
          ffmpeg_binary: /usr/local/bin/ffmpeg
        encoder:
          crf: 20
        pipeline:
          infer_every: 5
        model:
          factory: my_models.sam3:build
          confidence: 0.4
    """

    ffmpeg: FFmpegConfig = Field(default_factory=FFmpegConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the configuration file; defaults are used if None

    Returns:
        Validated configuration

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist
        ValueError: If the file is not valid YAML or fails validation
    """
    if path is None:
        logger.debug("No configuration file given, using defaults")
        return AppConfig()

    expanded_path = Path(path).expanduser()
    if not expanded_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {expanded_path}")

    try:
        with open(expanded_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {expanded_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping in {expanded_path}")

    # pydantic's ValidationError is a ValueError
    config = AppConfig.model_validate(data)
    logger.info(f"Loaded configuration from {expanded_path}")
    return config


def apply_overrides(config: AppConfig, overrides: Mapping[str, Any]) -> AppConfig:
    """Return a copy of ``config`` with dot-notation overrides applied.

    ``None`` values are skipped so unset command-line options keep the file
    values.

    Args:
        config: Base configuration
        overrides: Values keyed like ``"pipeline.infer_every"``

    Raises:
        ValueError: If a key is unknown or a value fails validation
    """
    data: Dict[str, Any] = config.model_dump()

    for key, value in overrides.items():
        if value is None:
            continue
        section, _, field = key.partition(".")
        if section not in data or field not in data[section]:
            raise ValueError(f"Unknown configuration key: {key}")
        data[section][field] = value

    return AppConfig.model_validate(data)
