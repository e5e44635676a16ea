"""Configuration: YAML + env overlay."""

from discirc.config.loader import load_config, load_config_with_env
from discirc.config.schema import Config

__all__ = ["Config", "load_config", "load_config_with_env"]
