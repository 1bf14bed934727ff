"""
Centralized Logging
===================

This module provides the logging infrastructure for the ImageTagger
application. All diagnostic output goes through the standard library
``logging`` package; the metadata engine only ever talks to a
``logging.Logger`` handed to it, so callers decide where records end up.

Key Features:
-------------
- Single Log Sink: One file handler (logs/imagetagger.log) plus an optional
  console handler, both attached to the root logger. Handler locks serialize
  writes from concurrent persistence calls.
- Exception Capture: log_exception() records an error with its traceback
  and the operation it happened in.
- Performance Recording: log_performance() and the log_timing decorator
  record how long an operation took.

Dependencies:
-------------
- logging: Standard library for output routing.

Author: ImageTagger Project
"""

import json
import logging
import sys
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from src.core.settings import LoggingSettings


# Log directory configuration
# Project root is 3 levels up from this file: utils -> src -> project root
PROJECT_ROOT = Path(__file__).parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"
DEFAULT_LOG_FILE = "imagetagger.log"

LOG_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - '
    '[%(filename)s:%(lineno)d] - %(message)s'
)


def setup_logging(
    settings: Optional[LoggingSettings] = None,
    log_format: Optional[str] = None
) -> Optional[Path]:
    """
    Initialize application-wide logging.

    Configs include:
    - Root Logger: Set to DEBUG so handlers decide what to keep.
    - File Handler: Writes to logs/imagetagger.log (recreated on each run)
      at the configured level.
    - Console Handler: Echoes records to stdout when enabled.

    Args:
        settings: Logging settings. Defaults to LoggingSettings().
        log_format: Optional custom formatting string.

    Returns:
        Path of the log file, or None when file logging is disabled.
    """
    if settings is None:
        settings = LoggingSettings()
    if log_format is None:
        log_format = LOG_FORMAT

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter = logging.Formatter(log_format, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    log_file = None
    if settings.log_to_file:
        log_file = Path(settings.log_file) if settings.log_file else LOG_DIR / DEFAULT_LOG_FILE
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    if settings.log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if not root_logger.handlers:
        root_logger.addHandler(logging.NullHandler())

    logging.info("=" * 80)
    logging.info(f"ImageTagger started - Log file: {log_file}")
    logging.info("=" * 80)

    return log_file


def shutdown_logging():
    """
    Flush and close all root handlers.
    Should be called before application exit.
    """
    logging.info("Shutting down logging system...")

    for handler in list(logging.root.handlers):
        handler.flush()
        handler.close()
        logging.root.removeHandler(handler)


def log_config(config_name: str, config_data: Dict[str, Any], logger: Optional[logging.Logger] = None):
    """
    Log configuration settings.

    Args:
        config_name: Name of the configuration being logged
        config_data: Dictionary of configuration settings
        logger: Optional logger instance (uses module logger if not provided)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.info(f"Configuration: {config_name}")
    logger.debug(f"{config_name} details: {json.dumps(config_data, indent=2, default=str)}")


def log_exception(logger: logging.Logger, exc: BaseException, context: str = "", level: int = logging.ERROR):
    """
    Record an exception together with the operation it interrupted.

    Args:
        logger: Logger to write to
        exc: The exception
        context: Short label of the failed operation (e.g. 'Create backup')
        level: Severity, ERROR unless the caller needs something else
    """
    prefix = f"[{context}] " if context else ""
    logger.log(
        level,
        f"{prefix}{type(exc).__name__}: {exc}",
        exc_info=(type(exc), exc, exc.__traceback__)
    )


def log_performance(logger: logging.Logger, operation: str, duration_seconds: float):
    """Record how long an operation took, in milliseconds."""
    logger.info(f"Performance: {operation} took {duration_seconds * 1000:.2f}ms")


def log_timing(func: Optional[Callable] = None, *, operation: Optional[str] = None):
    """
    Decorator that records the duration and outcome of a call.

    Wraps a function to log:
    1. The completion status (SUCCESS/FAILED).
    2. The elapsed time through log_performance().
    3. Any exception raised, which is then re-raised unchanged.

    Args:
        func: The function to instrument.
        operation: Label for the log entry (defaults to the function name).
    """
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(f.__module__)
            label = operation or f.__name__

            start_time = time.perf_counter()
            error_occurred = False

            try:
                return f(*args, **kwargs)

            except Exception as e:
                error_occurred = True
                log_exception(logger, e, label)
                raise

            finally:
                elapsed = time.perf_counter() - start_time
                status = "FAILED" if error_occurred else "SUCCESS"
                logger.debug(f"{label} completed - Status: {status}")
                log_performance(logger, label, elapsed)

        return wrapper

    # Handle both @log_timing and @log_timing(operation="...")
    if func is None:
        return decorator
    else:
        return decorator(func)
