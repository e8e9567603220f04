"""Unit tests for per-category log level setup."""

import logging

import pytest

from grounded_qa.config import Settings
from grounded_qa.infrastructure.logging import log_config

_TOUCHED = (
    "",
    "sqlalchemy.engine",
    "httpx",
    "httpcore",
    "uvicorn.access",
    "uvicorn.error",
    "HybridRetriever",
    "grounded_qa.infrastructure.openrouter",
)


@pytest.fixture(autouse=True)
def restore_levels():
    saved = {name: logging.getLogger(name).level for name in _TOUCHED}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def _use_settings(monkeypatch, **overrides):
    settings = Settings(_env_file=None, **overrides)
    monkeypatch.setattr(log_config, "get_settings", lambda: settings)


def test_category_levels_reach_their_loggers(monkeypatch):
    _use_settings(
        monkeypatch,
        log_level="INFO",
        log_level_sql="DEBUG",
        log_level_http="ERROR",
        log_level_uvicorn="WARNING",
        log_level_pipeline="DEBUG",
        log_level_openrouter="CRITICAL",
    )

    log_config.setup_logging()

    assert logging.getLogger().level == logging.INFO
    assert logging.getLogger("sqlalchemy.engine").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.ERROR
    assert logging.getLogger("uvicorn.access").level == logging.WARNING
    assert logging.getLogger("uvicorn.error").level == logging.WARNING
    assert logging.getLogger("HybridRetriever").level == logging.DEBUG
    assert logging.getLogger("grounded_qa.infrastructure.openrouter").level == logging.CRITICAL


def test_only_imported_libraries_are_configured(monkeypatch):
    _use_settings(monkeypatch, log_level_http="ERROR")
    logging.getLogger("httpcore").setLevel(logging.NOTSET)

    log_config.setup_logging()

    assert logging.getLogger("httpcore").level == logging.NOTSET
    configured = {name for names in log_config._CATEGORY_MAP.values() for name in names}
    assert not any(name.startswith("httpcore") for name in configured)


def test_unknown_level_name_falls_back_to_info(monkeypatch):
    _use_settings(monkeypatch, log_level_sql="chatty")

    log_config.setup_logging()

    assert logging.getLogger("sqlalchemy.engine").level == logging.INFO
