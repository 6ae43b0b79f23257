"""
Centralized logging setup for the Prerender Service.

This module configures the root logger from the 'logging' section of the active
YAML configuration (console and rotating file handlers) and hands out module
loggers.

Key Functions:
- `setup_logging()`: Initializes the logging system. Called once at application startup.
- `get_logger(name)`: Returns a logger for the given module name, initializing
                      logging with fallback settings if needed.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any

from prerender_service.core.config import ConfigurationManager

# PROJECT_ROOT: Absolute path used to resolve relative log file paths from the configuration.
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that drown out render traces at DEBUG. Overridden by `logging.loggers`.
DEFAULT_LIBRARY_LEVELS: Dict[str, str] = {
    "asyncio": "INFO",
    "playwright": "WARNING",
    "uvicorn.access": "WARNING",
}

# _logging_initialized: Global flag to prevent multiple initializations of the logging system.
_logging_initialized = False


def setup_logging(config: Optional[ConfigurationManager] = None) -> None:
    """
    Sets up centralized logging using settings from the provided `ConfigurationManager`.

    Configures the root logger with handlers (console, rotating file) and formatting
    as specified in the 'logging' section of the configuration. Falls back to
    `logging.basicConfig` if the configuration is missing or incomplete.

    Args:
        config (Optional[ConfigurationManager]): The application's configuration manager.
            If None, the global `config_manager` is used.
    """
    global _logging_initialized
    if _logging_initialized:
        logging.getLogger(__name__).debug("Logging setup_logging: Already initialized.")
        return

    current_config = config
    if current_config is None:
        from prerender_service.core.config import config_manager as global_config_manager
        current_config = global_config_manager

    log_settings: Optional[Dict[str, Any]] = current_config.get("logging")

    if not log_settings:
        logging.basicConfig(level=logging.INFO, format=DEFAULT_LOG_FORMAT)
        logging.warning("Logging setup: 'logging' section not found in configuration. Using basicConfig.")
        _logging_initialized = True
        return

    log_level_str = str(log_settings.get("level", "INFO")).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    log_format = log_settings.get("format", DEFAULT_LOG_FORMAT)

    root_logger = logging.getLogger()

    # Drop handlers installed by basicConfig or a previous setup to avoid duplicate lines.
    if root_logger.hasHandlers():
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    root_logger.setLevel(log_level)
    formatter = logging.Formatter(log_format)

    handlers_settings = log_settings.get("handlers", {}) or {}

    console_handler_settings = handlers_settings.get("console", {}) or {}
    if console_handler_settings.get("enabled", False):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    file_handler_settings = handlers_settings.get("file", {}) or {}
    if file_handler_settings.get("enabled", False):
        log_file_path_relative = file_handler_settings.get("path", "logs/prerender_service.log")
        log_file_path_absolute = os.path.join(PROJECT_ROOT, log_file_path_relative)
        max_bytes = int(file_handler_settings.get("max_bytes", 10 * 1024 * 1024))
        backup_count = int(file_handler_settings.get("backup_count", 5))

        try:
            os.makedirs(os.path.dirname(log_file_path_absolute), exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=log_file_path_absolute,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.error(f"Logging setup: Failed to configure file logging at '{log_file_path_absolute}': {e}. File logging disabled.", exc_info=True)

    apply_logger_levels(log_settings.get("loggers") or DEFAULT_LIBRARY_LEVELS)

    _logging_initialized = True
    logging.info(f"Logging system initialized. Level: {log_level_str}.")
    if file_handler_settings.get("enabled", False):
        logging.debug(f"File logging handler enabled at path: {log_file_path_absolute}")


def apply_logger_levels(levels: Dict[str, Any]) -> None:
    """
    Sets per-logger levels, e.g. {"playwright": "WARNING"}. Unknown level names are skipped.
    """
    for logger_name, level_name in levels.items():
        level = logging.getLevelName(str(level_name).upper())
        if not isinstance(level, int):
            logging.warning(f"Logging setup: ignoring unknown level {level_name!r} for logger '{logger_name}'.")
            continue
        logging.getLogger(logger_name).setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Retrieves a logger instance with the specified name.

    Ensures that `setup_logging()` has been called at least once before a logger is
    dispensed, which makes it safe to call from any module at import time.

    Args:
        name (str): The name for the logger, typically `__name__` of the calling module.

    Returns:
        logging.Logger: An instance of `logging.Logger`.
    """
    if not _logging_initialized:
        setup_logging()
    return logging.getLogger(name)
