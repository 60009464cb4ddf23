from __future__ import annotations

import logging

import pymysql
import pytest

from csv2table.db.base import DbService
from csv2table.db.errors import (
    ColumnCountMismatchError,
    DbConnectionError,
    FormatError,
    SessionStateError,
    WriteError,
)
from csv2table.db.session import MySqlImportSession, SessionState
from csv2table.models.config_models import ColumnMapping, DatabaseConfig, ImportConfig


def _config(**kwargs) -> ImportConfig:
    kwargs.setdefault("table", "orders")
    kwargs.setdefault("database", DatabaseConfig(db="shop", host="db.local", port=3307, username="u", password="p"))
    kwargs.setdefault("bulk_insert_size", 2)
    return ImportConfig(**kwargs)


def test_session_is_db_service(fake_connect):
    assert isinstance(MySqlImportSession(connect=fake_connect), DbService)


def test_start_connects_and_probes(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    assert session.state is SessionState.CONNECTED
    assert fake_connect.calls == [
        {
            "host": "db.local",
            "port": 3307,
            "user": "u",
            "password": "p",
            "database": "shop",
            "charset": "utf8mb4",
            "autocommit": True,
        }
    ]
    assert fake_db.ping_calls == 1


def test_start_connection_failure():
    def refuse(**kwargs):
        raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")

    session = MySqlImportSession(connect=refuse)
    with pytest.raises(DbConnectionError) as exc:
        session.start("orders.csv", _config())
    assert "db.local:3307/shop" in str(exc.value)
    assert session.state is SessionState.CLOSED
    with pytest.raises(SessionStateError):
        session.process_header(["a"])


def test_start_probe_failure_closes_connection(fake_connect, fake_db):
    def broken_ping(reconnect=True):
        raise pymysql.err.OperationalError(2006, "MySQL server has gone away")

    fake_db.ping = broken_ping
    session = MySqlImportSession(connect=fake_connect)
    with pytest.raises(DbConnectionError):
        session.start("orders.csv", _config())
    assert fake_db.closed is True


def test_full_lifecycle(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    session.process_header(["Name", "Amount", "Created"])
    assert session.state is SessionState.SCHEMA_READY
    assert session.columns == ["Name", "Amount", "Created"]

    session.process_line(["Ann", "1", "x"])
    assert session.state is SessionState.STREAMING
    session.process_line(["Bob", "2", "y"])
    session.process_line(["Cid", "3", "z"])
    assert session.row_count == 2
    assert session.lines_processed == 3

    session.end()
    assert session.state is SessionState.CLOSED
    assert session.row_count == 3
    assert len(fake_db.inserts) == 2
    assert fake_db.closed is True


def test_header_sanitized_before_table_creation(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    session.process_header(["Order No.", "e-mail", ""])
    assert session.columns == ["Order_No_", "e_mail", "column_3"]
    assert list(fake_db.tables["orders"]) == ["Order_No_", "e_mail", "column_3"]


def test_mapping_applied_by_sanitized_name(fake_connect, fake_db):
    config = _config(mapping={"Order_No_": ColumnMapping(type="INT NULL", null_if=("-",))})
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", config)
    session.process_header(["Order No."])
    session.process_line(["-"])
    session.end()
    assert fake_db.tables["orders"] == {"Order_No_": "INT NULL"}
    assert fake_db.inserts == ["INSERT INTO `orders` (`Order_No_`) VALUES\n(NULL)"]


def test_column_count_mismatch(fake_connect):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    session.process_header(["a", "b"])
    session.process_line(["1", "2"])
    with pytest.raises(ColumnCountMismatchError) as exc:
        session.process_line(["only-one"])
    err = exc.value
    assert (err.row, err.expected, err.actual) == (2, 2, 1)
    assert err.error_type == "COLUMN_COUNT_MISMATCH"


def test_format_error_names_column_and_row(fake_connect):
    config = _config(mapping={"Created": ColumnMapping(type="DATE NULL", format="02.01.2006")})
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", config)
    session.process_header(["Created"])
    session.process_line(["01.12.2019"])
    with pytest.raises(FormatError) as exc:
        session.process_line(["01.-12.2019"])
    err = exc.value
    assert err.row == 2
    assert err.column == "Created"
    assert str(err).startswith("row 2: column Created: cannot parse '01.-12.2019'")


def test_values_and_identifiers_escaped_once(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("o'rders.csv", _config(table="o'rders", bulk_insert_size=10))
    session.process_header(["note"])
    session.process_line(["it's"])
    session.end()
    assert fake_db.executed[0] == "SHOW TABLES LIKE 'o\\'rders'"
    assert fake_db.inserts == ["INSERT INTO `o\\'rders` (`note`) VALUES\n('it\\'s')"]


def test_operations_out_of_order(fake_connect):
    session = MySqlImportSession(connect=fake_connect)
    with pytest.raises(SessionStateError):
        session.process_header(["a"])
    session.start("orders.csv", _config())
    with pytest.raises(SessionStateError):
        session.process_line(["1"])
    with pytest.raises(SessionStateError):
        session.start("orders.csv", _config())
    session.process_header(["a"])
    with pytest.raises(SessionStateError):
        session.process_header(["a"])


def test_end_closes_when_final_flush_fails(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config(bulk_insert_size=10))
    session.process_header(["a"])
    session.process_line(["1"])
    fake_db.fail_on = lambda sql: sql.startswith("INSERT")
    with pytest.raises(WriteError):
        session.end()
    assert session.state is SessionState.CLOSED
    assert fake_db.closed is True


def test_close_is_idempotent_and_discards_pending(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config(bulk_insert_size=10))
    session.process_header(["a"])
    session.process_line(["1"])
    session.close()
    session.close()
    session.end()
    assert fake_db.inserts == []
    assert session.state is SessionState.CLOSED


def test_end_without_header_only_closes(fake_connect, fake_db):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    session.end()
    assert fake_db.closed is True
    assert fake_db.inserts == []


def test_context_manager_closes(fake_connect, fake_db):
    with MySqlImportSession(connect=fake_connect) as session:
        session.start("orders.csv", _config())
    assert fake_db.closed is True


def test_end_logs_lines_read_and_rows_written(fake_connect, caplog):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config(verbose=True))
    session.process_header(["a"])
    session.process_line(["1"])
    session.process_line(["2"])
    session.process_line(["3"])
    with caplog.at_level(logging.INFO, logger="csv2table.db.session"):
        session.end()
    assert "Finished orders.csv: 3 lines read, 3 rows written to orders" in caplog.messages


@pytest.mark.parametrize("operation", ["process_header", "process_line"])
def test_operations_after_close_raise_state_error(fake_connect, operation):
    session = MySqlImportSession(connect=fake_connect)
    session.start("orders.csv", _config())
    session.close()
    with pytest.raises(SessionStateError, match=f"{operation}\\(\\) not allowed in state closed"):
        getattr(session, operation)(["a"])
