# Shared pytest fixtures
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from csv2table.logging.init import reset_logging
from tests.fakes import FakeConnection


@pytest.fixture()
def fake_db() -> FakeConnection:
    return FakeConnection()


@pytest.fixture()
def fake_connect(fake_db: FakeConnection) -> Callable[..., FakeConnection]:
    """Connection factory with pymysql.connect's keyword signature.

    Every call reopens the same fake so that tables persist across files.
    """
    calls: list[dict[str, Any]] = []

    def connect(**kwargs: Any) -> FakeConnection:
        calls.append(kwargs)
        fake_db.closed = False
        return fake_db

    connect.calls = calls  # type: ignore[attr-defined]
    return connect


@pytest.fixture()
def temp_workdir(monkeypatch, tmp_path: Path) -> Path:
    (tmp_path / "data").mkdir()
    monkeypatch.chdir(tmp_path)
    for key in ("MYSQL_DATABASE", "MYSQL_HOST", "MYSQL_PORT", "MYSQL_USER", "MYSQL_PASSWORD"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


@pytest.fixture()
def data_dir(temp_workdir: Path) -> Path:
    return temp_workdir / "data"


@pytest.fixture()
def global_config_yaml() -> str:
    return """db: shop
host: db.local
port: 3307
username: importer
password: secret
bulkInsertSize: 2
"""


@pytest.fixture()
def write_global_config(data_dir: Path, global_config_yaml: str) -> Path:
    cfg = data_dir / "csv2table.yml"
    cfg.write_text(global_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    reset_logging()
