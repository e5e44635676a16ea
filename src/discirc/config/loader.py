"""Config loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from discirc.core.errors import BridgeConfigurationError


def load_config(path: str | Path) -> dict[str, Any]:
    """Load config from YAML file. Use SafeLoader. Returns raw dict.

    Raises BridgeConfigurationError when the file is missing, unreadable,
    not valid YAML, or not a mapping at the top level.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise BridgeConfigurationError(
            f"Cannot read config {path}: {exc.strerror or exc}",
            code="unreadable_config",
            details={"path": str(path)},
            original_error=exc,
        ) from exc
    except yaml.YAMLError as exc:
        logger.error("Failed to parse config {}: {}", path, exc)
        raise BridgeConfigurationError(
            f"Invalid YAML in {path}",
            code="invalid_yaml",
            details={"path": str(path)},
            original_error=exc,
        ) from exc

    if data is None:
        logger.warning("Config file {} is empty", path)
        return {}
    if not isinstance(data, dict):
        raise BridgeConfigurationError(
            f"Config file {path} has invalid structure (expected mapping)",
            code="invalid_structure",
            details={"path": str(path), "type": type(data).__name__},
        )
    return data


def load_config_with_env(path: str | Path) -> dict[str, Any]:
    """Load config from YAML after loading .env into the process environment.

    Env overrides themselves are applied by Config properties.
    """
    from dotenv import find_dotenv, load_dotenv

    load_dotenv(find_dotenv(usecwd=True))
    return load_config(path)
