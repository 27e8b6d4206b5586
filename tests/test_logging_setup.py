from __future__ import annotations

import logging

import pytest

import budget_pipeline.logging_setup as logging_setup
from budget_pipeline.logging_setup import configure_logging, get_logger, resolve_level


@pytest.fixture
def fresh_package_logger(monkeypatch: pytest.MonkeyPatch):
    logger = logging.getLogger(logging_setup.PACKAGE_LOGGER)
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers.clear()
    monkeypatch.setattr(logging_setup, "_configured", False)
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.mark.parametrize(
    "level, expected",
    [
        (logging.WARNING, logging.WARNING),
        ("debug", logging.DEBUG),
        (" Error ", logging.ERROR),
        ("15", 15),
        (None, logging.INFO),
        ("nonsense", logging.INFO),
    ],
)
def test_resolve_level(level, expected: int) -> None:
    assert resolve_level(level) == expected


def test_resolve_level_falls_back_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(logging_setup.LEVEL_ENV, "warning")
    assert resolve_level(None) == logging.WARNING
    assert resolve_level("debug") == logging.DEBUG


def test_library_logging_is_silent_until_configured(fresh_package_logger) -> None:
    get_logger("budget_pipeline.rules")
    assert [type(h) for h in fresh_package_logger.handlers] == [logging.NullHandler]


def test_configure_logging_runs_once(fresh_package_logger) -> None:
    get_logger("budget_pipeline.rules")
    configure_logging("DEBUG")
    configure_logging("ERROR")

    handlers = fresh_package_logger.handlers
    assert len(handlers) == 1 and isinstance(handlers[0], logging.StreamHandler)
    assert not isinstance(handlers[0], logging.NullHandler)
    assert fresh_package_logger.level == logging.DEBUG
    assert fresh_package_logger.propagate is False
