"""
Application Configuration Persistence
======================================

This module manages the serialization and deserialization of the ImageTagger
settings. It keeps user preferences, such as the writable format list and
the logging level, between runs.

Key Responsibilities:
---------------------
- File-System Persistence: Stores settings in a hidden JSON file in the
  user's home directory (`~/.imagetagger_config.json`).
- State Synchronization: Maps JSON keys onto the `MetadataSettings` and
  `LoggingSettings` dataclasses. Unknown keys are ignored.
- Fault Tolerance: A missing or corrupted file yields default settings.

Author: ImageTagger Project
"""

import json
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from src.core.settings import AppSettings, LoggingSettings, MetadataSettings
from src.utils.logger import log_config

CONFIG_PATH = Path.home() / ".imagetagger_config.json"


def _apply_section(target: Any, data: Dict[str, Any]):
    """Copy known keys of one JSON section onto a settings dataclass."""
    known = {f.name for f in fields(target)}
    for k, v in data.items():
        if k in known:
            setattr(target, k, v)


def save_settings(settings: AppSettings, path: Optional[Union[str, Path]] = None) -> bool:
    """
    Persist settings to the configuration file as pretty-printed JSON.

    Args:
        settings: Settings to store.
        path: Override for the config file location.

    Returns:
        True if the file was written.
    """
    logger = logging.getLogger(__name__)
    config_path = Path(path) if path else CONFIG_PATH

    try:
        data = {
            "metadata": asdict(settings.metadata),
            "logging": asdict(settings.logging)
        }

        log_config("Saving Configuration", data, logger)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Configuration saved successfully to {config_path}")
        return True

    except (OSError, TypeError) as e:
        logger.error(f"Failed to save configuration: {e}", exc_info=True)
        return False


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """
    Load settings from the hidden JSON file.

    Sections and keys that are absent keep their defaults, so an older
    config file stays loadable after new settings are added.

    Args:
        path: Override for the config file location.
    """
    logger = logging.getLogger(__name__)
    config_path = Path(path) if path else CONFIG_PATH
    settings = AppSettings(metadata=MetadataSettings(), logging=LoggingSettings())

    if not config_path.exists():
        logger.info(f"No existing configuration file found at {config_path}")
        return settings

    try:
        logger.info(f"Loading configuration from {config_path}")

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        log_config("Loaded Configuration", data, logger)

        if isinstance(data.get("metadata"), dict):
            _apply_section(settings.metadata, data["metadata"])
            logger.debug(f"Metadata settings updated: formats={settings.metadata.supported_formats}")

        if isinstance(data.get("logging"), dict):
            _apply_section(settings.logging, data["logging"])
            logger.debug(f"Logging settings updated: level={settings.logging.log_level}")

        logger.info("Configuration loaded and applied successfully")

    except json.JSONDecodeError as e:
        logger.error(f"Configuration file is corrupted: {e}", exc_info=True)
        return AppSettings()
    except (OSError, AttributeError) as e:
        logger.error(f"Failed to load configuration: {e}", exc_info=True)
        return AppSettings()

    return settings
