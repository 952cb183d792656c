"""
Configuration loading for popwarden.

Layers:
- Builtin: popwarden/config/defaults.yaml
- User: ~/.popwarden/config.yaml (or an explicit path)

The user layer is deep-merged over the builtin layer and the result is
validated with PopwardenConfig.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from popwarden.config.models import PopwardenConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).parent
DEFAULTS_FILE = CONFIG_DIR / "defaults.yaml"
USER_CONFIG_PATH = Path.home() / ".popwarden" / "config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML value must be a mapping")
    return data


def deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Merge overlay into a copy of base; nested mappings merge key by key."""
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_raw_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Return the merged builtin + user configuration as a plain dict.

    Args:
        config_path: Override the user config file path

    Raises:
        OSError, yaml.YAMLError, ValueError: when an explicit file is unreadable
    """
    merged = _read_yaml(DEFAULTS_FILE)
    if config_path is not None:
        return deep_merge(merged, _read_yaml(Path(config_path)))

    if USER_CONFIG_PATH.exists():
        try:
            merged = deep_merge(merged, _read_yaml(USER_CONFIG_PATH))
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("Ignoring unreadable user config %s: %s", USER_CONFIG_PATH, e)
    return merged


def load_config(config_path: Optional[Path] = None) -> PopwardenConfig:
    """
    Load and validate popwarden configuration.

    An explicit config_path is strict: unreadable files and pydantic
    ValidationError propagate to the caller. Without one, an invalid user
    file is logged and the builtin defaults are used.
    """
    raw = load_raw_config(config_path)
    if config_path is not None:
        return PopwardenConfig.model_validate(raw)

    try:
        return PopwardenConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning("Invalid user config %s, using defaults: %s", USER_CONFIG_PATH, e)
        return PopwardenConfig.model_validate(_read_yaml(DEFAULTS_FILE))
