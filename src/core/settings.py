"""
Settings Module
===============

This module defines the runtime settings structures for the ImageTagger engine.
Settings are plain dataclasses owned by the caller and passed explicitly into
the MetadataService, so every service instance (and every test) works against
its own copy rather than a process-wide cache.

The settings are persisted between runs using the config_manager utility.
"""

from dataclasses import dataclass, field
from typing import List

from . import config

# ============================================================================
# CONFIGURATION DATACLASSES
# ============================================================================

@dataclass
class MetadataSettings:
    """
    Configuration for the metadata persistence engine.

    Attributes:
        supported_formats: Extensions (no leading dot) the engine will write to.
                           Compared case-insensitively.
        software_tag: Value stamped into the EXIF Software field.
        verify_after_write: Re-read tags after a successful write for
                            diagnostics. Never changes the commit decision.
    """
    supported_formats: List[str] = field(default_factory=lambda: list(config.DEFAULT_SUPPORTED_FORMATS))
    software_tag: str = config.SOFTWARE_TAG
    verify_after_write: bool = True

    def normalized_formats(self) -> List[str]:
        """Lowercased formats with any leading dot removed."""
        return [fmt.lower().lstrip(".") for fmt in self.supported_formats]


@dataclass
class LoggingSettings:
    """
    Configuration for diagnostic logging.

    Attributes:
        log_level: Level name for the log file ('DEBUG', 'INFO', ...)
        log_to_file: Whether to write logs/imagetagger.log
        log_to_console: Whether to echo log records to stdout
        log_file: Optional explicit log file path (empty = default location)
    """
    log_level: str = "INFO"
    log_to_file: bool = True
    log_to_console: bool = False
    log_file: str = ""


@dataclass
class AppSettings:
    """Aggregate of all persisted settings sections."""
    metadata: MetadataSettings = field(default_factory=MetadataSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
