"""Pytest configuration for test isolation.

Every test starts without ``DATABASE_URL``/``LEDGERLINE_*`` variables from the
developer's shell, and engines created during a test are disposed afterwards
so the next test's SQLite file gets a fresh connection pool.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for var in ("DATABASE_URL", "LEDGERLINE_USER_ID", "LEDGERLINE_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield
    dispose_engines()


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """A fresh schema in a per-test SQLite file, also exported as ``DATABASE_URL``."""

    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    monkeypatch.setenv("DATABASE_URL", url)
    return url
