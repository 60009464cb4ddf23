from __future__ import annotations

from pathlib import Path

import pymysql
import pytest

from csv2table.cli import main as cli_main
from tests.fakes import write_csv


@pytest.fixture()
def patched_connect(monkeypatch, fake_connect):
    monkeypatch.setattr(pymysql, "connect", fake_connect)
    return fake_connect


def test_cli_no_files_success(write_global_config, patched_connect, capsys):
    code = cli_main(["data", "--no-email"])
    out = capsys.readouterr().out
    assert code == 0
    assert "SUMMARY files=0 success=0 failed=0 rows=0" in out


def test_cli_directory_missing(temp_workdir: Path, capsys):
    code = cli_main(["missing_dir"])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR directory not found: missing_dir" in out


def test_cli_invalid_global_config(data_dir: Path, capsys):
    (data_dir / "csv2table.yml").write_text("bulkInsertSize: 0\n", encoding="utf-8")
    code = cli_main(["data"])
    out = capsys.readouterr().out
    assert code == 1
    assert "ERROR config: csv2table.yml: config validation failed at bulkInsertSize" in out


def test_cli_imports_files(write_global_config, data_dir: Path, patched_connect, fake_db, capsys):
    write_csv(data_dir, "customers.csv", ["id;name", "1;Ann", "2;Bob", "3;Cid"])
    code = cli_main(["data", "--no-email"])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO customers.csv: imported 3 rows into customers" in out
    assert "SUMMARY files=1 success=1 failed=0 rows=3" in out
    assert patched_connect.calls[0]["host"] == "db.local"
    assert patched_connect.calls[0]["port"] == 3307
    assert len(fake_db.inserts) == 2


def test_cli_partial_failure(write_global_config, data_dir: Path, temp_workdir: Path, patched_connect, capsys):
    write_csv(data_dir, "good.csv", ["a", "1"])
    write_csv(data_dir, "bad.csv", ["a;b", "1;2;3"])
    code = cli_main(["data", "--no-email"])
    out = capsys.readouterr().out
    assert code == 2
    assert "ERROR bad.csv: row 1: expected 2 columns, got 3" in out
    assert "SUMMARY files=2 success=1 failed=1 rows=1" in out
    assert len(list((temp_workdir / "logs").glob("errors-*.log"))) == 1


def test_cli_custom_config_name(data_dir: Path, patched_connect, capsys):
    (data_dir / "other.yml").write_text("db: shop\n", encoding="utf-8")
    write_csv(data_dir, "t.csv", ["a", "1"])
    code = cli_main(["data", "--config", "other.yml", "--no-email"])
    assert code == 0
    assert patched_connect.calls[0]["database"] == "shop"


def test_cli_env_file_fills_connection(temp_workdir: Path, data_dir: Path, patched_connect, monkeypatch):
    (temp_workdir / ".env").write_text("MYSQL_HOST=envhost\nMYSQL_USER=envuser\n", encoding="utf-8")
    (data_dir / "csv2table.yml").write_text("db: shop\n", encoding="utf-8")
    write_csv(data_dir, "t.csv", ["a", "1"])
    # register the keys with monkeypatch so values loaded from .env are removed afterwards
    for key in ("MYSQL_HOST", "MYSQL_USER"):
        monkeypatch.setenv(key, "unset")
        monkeypatch.delenv(key)
    monkeypatch.setenv("MYSQL_PASSWORD", "from-env")

    code = cli_main(["data", "--no-email"])
    assert code == 0
    call = patched_connect.calls[0]
    assert (call["host"], call["user"], call["password"]) == ("envhost", "envuser", "from-env")


def test_cli_env_does_not_override_config(temp_workdir: Path, write_global_config, patched_connect, monkeypatch):
    monkeypatch.setenv("MYSQL_HOST", "envhost")
    write_csv(write_global_config.parent, "t.csv", ["a", "1"])
    assert cli_main(["data", "--no-email"]) == 0
    assert patched_connect.calls[0]["host"] == "db.local"


def test_cli_sends_notification(write_global_config, data_dir: Path, patched_connect, monkeypatch):
    sent = []

    def fake_send(cfg, statuses):
        sent.append((cfg, statuses))
        return True

    monkeypatch.setattr("csv2table.cli.__main__.send_notification", fake_send)
    write_csv(data_dir, "t.csv", ["a", "1"])
    assert cli_main(["data"]) == 0
    [(cfg, statuses)] = sent
    assert cfg is None
    assert [s.file_name for s in statuses] == ["t.csv"]


def test_cli_no_email_skips_notification(write_global_config, patched_connect, monkeypatch):
    monkeypatch.setattr(
        "csv2table.cli.__main__.send_notification",
        lambda *a: pytest.fail("notification must not be sent"),
    )
    assert cli_main(["data", "--no-email"]) == 0


def test_cli_debug_mode(write_global_config, patched_connect, capsys):
    cli_main(["data", "--debug", "--no-email"])
    out = capsys.readouterr().out
    assert "DEBUG debug mode enabled" in out


def test_cli_inspect_data(data_dir: Path, patched_connect, capsys):
    (data_dir / "csv2table.yml").write_text("delimiter: ','\n", encoding="utf-8")
    write_csv(data_dir, "t.csv", ["id,name", "1,Ann"])
    code = cli_main(["data", "--inspect-data"])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: t.csv" in out
    assert "columns=['id', 'name']" in out
    assert patched_connect.calls == []
