"""Application configuration."""

from segment_stream.config.loader import AppConfig, apply_overrides, load_config

__all__ = ["AppConfig", "apply_overrides", "load_config"]
