"""Pytest configuration for test isolation.

Pipeline settings and the CLI read ``DATABASE_URL``, ``BUDGET_*`` and
``YELP_*`` from the environment (and from a ``.env`` in the working
directory). A developer's shell or ``.env`` must never leak into tests, so an
autouse fixture clears those variables and runs each test from its own
temporary directory. Cached engines are disposed after every test because
each test gets a fresh SQLite file.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines
from sqlalchemy.orm import Session

from tests.helpers.db import bootstrap_sqlite_db, open_session

_ENV_VARS = (
    "DATABASE_URL",
    "BUDGET_DEFAULT_CATEGORY",
    "BUDGET_AUTO_CREATE_MERCHANTS",
    "BUDGET_RECONCILE_MANUAL",
    "BUDGET_PIPELINE_LOG_LEVEL",
    "YELP_API_KEY",
    "YELP_API_URL",
)


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    workdir = tmp_path / "cwd"
    workdir.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(workdir)
    yield
    dispose_engines()


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return bootstrap_sqlite_db(tmp_path / "budget.db")


@pytest.fixture
def session(db_url: str) -> Iterator[Session]:
    s = open_session(db_url)
    try:
        yield s
    finally:
        s.close()
