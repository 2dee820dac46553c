"""User configuration persistence: load and save config.json."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ai4paper.models import GROUP_OPTIONS, SEARCH_MODES, SORT_OPTIONS
from ai4paper.persistence import get_config_dir, get_data_dir, read_json, write_json_atomic

logger = logging.getLogger(__name__)

# ============================================================================
# Configuration Persistence
# ============================================================================
#
# Validation contract: _dict_to_config() guarantees valid output for any input.
#
#   Field             Rule                      Handler
#   ────────────────  ────────────────────────  ─────────────────
#   default_sort      in SORT_OPTIONS           _parse_choice
#   default_group_by  in GROUP_OPTIONS          _parse_choice
#   search_mode       in SEARCH_MODES           _parse_choice
#   scalar fields     type-checked              _safe_get
#
CONFIG_FILENAME = "config.json"


@dataclass(slots=True)
class UserConfig:
    """Preferences and locations, all optional."""

    corpus_path: str = ""  # Empty = no corpus configured, pass --corpus
    data_dir: str = ""  # Empty = platformdirs user data dir
    default_sort: str = "saved"
    default_group_by: str = "none"
    search_mode: str = "substring"
    version: int = 1

    def resolved_data_dir(self) -> Path:
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        return get_data_dir()


def get_config_path() -> Path:
    """Get the path to the configuration file.

    - Linux: ~/.config/ai4paper/config.json
    - macOS: ~/Library/Application Support/ai4paper/config.json
    - Windows: %APPDATA%/ai4paper/config.json
    """
    return get_config_dir() / CONFIG_FILENAME


def _safe_get(data: dict, key: str, default: Any, expected_type: type) -> Any:
    """Safely get a value from dict with type validation.

    Returns the default if key is missing or value has wrong type.
    """
    value = data.get(key, default)
    if not isinstance(value, expected_type):
        return default
    return value


def _parse_choice(data: dict, key: str, choices: Any, default: str) -> str:
    value = _safe_get(data, key, default, str)
    if value not in choices:
        logger.warning("Invalid %s %r in config, defaulting to %r", key, value, default)
        return default
    return value


def _config_to_dict(config: UserConfig) -> dict[str, Any]:
    return {
        "version": config.version,
        "corpus_path": config.corpus_path,
        "data_dir": config.data_dir,
        "default_sort": config.default_sort,
        "default_group_by": config.default_group_by,
        "search_mode": config.search_mode,
    }


def _dict_to_config(data: dict[str, Any]) -> UserConfig:
    return UserConfig(
        corpus_path=_safe_get(data, "corpus_path", "", str),
        data_dir=_safe_get(data, "data_dir", "", str),
        default_sort=_parse_choice(data, "default_sort", SORT_OPTIONS, "saved"),
        default_group_by=_parse_choice(data, "default_group_by", GROUP_OPTIONS, "none"),
        search_mode=_parse_choice(data, "search_mode", SEARCH_MODES, "substring"),
        version=_safe_get(data, "version", 1, int),
    )


def load_config() -> UserConfig:
    """Load configuration from disk.

    Returns default config if the file doesn't exist or is corrupted.
    """
    data = read_json(get_config_path())
    if data is None:
        return UserConfig()
    if not isinstance(data, dict):
        logger.warning("Config file has invalid structure, using defaults")
        return UserConfig()
    return _dict_to_config(data)


def save_config(config: UserConfig) -> bool:
    """Save configuration to disk atomically. Returns True on success."""
    try:
        write_json_atomic(get_config_path(), _config_to_dict(config))
        return True
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return False


__all__ = [
    "CONFIG_FILENAME",
    "UserConfig",
    "get_config_path",
    "load_config",
    "save_config",
]
