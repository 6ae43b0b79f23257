import logging
from logging.handlers import RotatingFileHandler

import pytest

from prerender_service.core import logger as logger_module
from prerender_service.core.logger import apply_logger_levels, get_logger, setup_logging


class MockConfigurationManager:
    def __init__(self, settings=None):
        self.settings = settings if settings is not None else {}

    def get(self, key, default=None):
        try:
            value = self.settings
            for k_part in key.split('.'):
                value = value[k_part]
            return value
        except (KeyError, TypeError):
            return default


@pytest.fixture
def fresh_logging(monkeypatch):
    """Lets setup_logging() run again and restores the root logger afterwards."""
    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    touched = ("asyncio", "playwright", "uvicorn.access", "noisy.library")
    original_levels = {name: logging.getLogger(name).level for name in touched}
    monkeypatch.setattr(logger_module, "_logging_initialized", False)

    yield root_logger

    for handler in root_logger.handlers[:]:
        if handler not in original_handlers:
            root_logger.removeHandler(handler)
            handler.close()
    for handler in original_handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(original_level)
    for name, level in original_levels.items():
        logging.getLogger(name).setLevel(level)


def test_setup_logging_from_config(fresh_logging, tmp_path, monkeypatch):
    monkeypatch.setattr(logger_module, "PROJECT_ROOT", str(tmp_path))
    config = MockConfigurationManager({
        "logging": {
            "level": "warning",
            "handlers": {
                "console": {"enabled": True},
                "file": {"enabled": True, "path": "logs/render.log", "max_bytes": 1024, "backup_count": 2},
            },
            "loggers": {"noisy.library": "ERROR"},
        }
    })

    setup_logging(config)

    assert fresh_logging.level == logging.WARNING
    file_handlers = [h for h in fresh_logging.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == 1024
    assert (tmp_path / "logs").is_dir()
    assert logging.getLogger("noisy.library").level == logging.ERROR
    assert logger_module._logging_initialized is True


def test_library_levels_default_when_not_configured(fresh_logging):
    setup_logging(MockConfigurationManager({"logging": {"level": "DEBUG", "handlers": {"console": {"enabled": True}}}}))

    assert logging.getLogger("playwright").level == logging.WARNING
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_missing_logging_section_falls_back_to_basic_config(fresh_logging):
    setup_logging(MockConfigurationManager({}))
    assert logger_module._logging_initialized is True


def test_unknown_level_names_are_skipped(fresh_logging):
    logging.getLogger("noisy.library").setLevel(logging.INFO)
    apply_logger_levels({"noisy.library": "LOUD"})
    assert logging.getLogger("noisy.library").level == logging.INFO


def test_get_logger_returns_named_logger():
    assert get_logger("prerender_service.tests").name == "prerender_service.tests"
