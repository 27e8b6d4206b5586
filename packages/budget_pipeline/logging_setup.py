"""Logging for the ``budget_pipeline`` package.

Service modules log through ``get_logger("budget_pipeline.<module>")`` and
never attach handlers. Output is switched on once per process by the CLI
calling :func:`configure_logging`; until then the package logger only carries
a ``NullHandler`` so library use stays silent.

The level comes from the explicit argument (``--log-level``), else the
``BUDGET_PIPELINE_LOG_LEVEL`` environment variable, else ``INFO``.
"""

from __future__ import annotations

import logging
import os
import sys

PACKAGE_LOGGER = "budget_pipeline"
LEVEL_ENV = "BUDGET_PIPELINE_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def resolve_level(level: int | str | None = None) -> int:
    """Return a numeric level for ``level``, falling back to the environment.

    Accepts ints, numeric strings and level names in any case. Unknown names
    are ignored rather than rejected.
    """

    for candidate in (level, os.getenv(LEVEL_ENV)):
        if isinstance(candidate, int):
            return candidate
        if isinstance(candidate, str) and candidate.strip():
            name = candidate.strip().upper()
            if name.isdigit():
                return int(name)
            numeric = logging.getLevelName(name)
            if isinstance(numeric, int):
                return numeric
    return logging.INFO


def configure_logging(level: int | str | None = None) -> None:
    """Send package log records to stderr. Later calls are no-ops."""

    global _configured
    if _configured:
        return

    logger = logging.getLogger(PACKAGE_LOGGER)
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))
    logger.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if not _configured and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["LEVEL_ENV", "PACKAGE_LOGGER", "configure_logging", "get_logger", "resolve_level"]
