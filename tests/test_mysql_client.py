# ==============================================
# Tests for MySQLClient (SQL shape, no live server)
# ==============================================

from unittest.mock import MagicMock

import pymysql.err
import pytest

from docsync.analysis.decision import ColumnType
from docsync.config import RetryConfig
from docsync.errors import SchemaEvolutionError, StoreConnectionError, WriteError
from docsync.storage.mysql_client import (
    MySQLClient,
    build_upsert_query,
    is_transient_mysql_error,
    quote_identifier,
)


@pytest.fixture
def client():
    no_wait = RetryConfig(max_attempts=2, min_backoff_seconds=0, max_backoff_seconds=0)
    db = MySQLClient("localhost", 3306, "root", "root", "docsync", retry=no_wait)
    db.connection = MagicMock()
    return db


def executed(client):
    cursor = client.connection.cursor.return_value
    return [c.args for c in cursor.execute.call_args_list]


class TestQuoting:
    def test_quote_identifier(self):
        assert quote_identifier("orders") == "`orders`"

    def test_embedded_backtick_doubled(self):
        assert quote_identifier("we`ird") == "`we``ird`"


class TestUpsertQuery:
    def test_shape(self):
        query = build_upsert_query("orders", ["mongo_id", "total", "paid"], "mongo_id")
        assert query == (
            "INSERT INTO `orders` (`mongo_id`, `total`, `paid`) VALUES (%s, %s, %s) "
            "ON DUPLICATE KEY UPDATE `total` = VALUES(`total`), `paid` = VALUES(`paid`)"
        )

    def test_key_only_row(self):
        query = build_upsert_query("t", ["mongo_id"], "mongo_id")
        assert query.endswith("ON DUPLICATE KEY UPDATE `mongo_id` = `mongo_id`")


class TestDDL:
    def test_create_table(self, client):
        client.create_table("orders", "surrogate_id", "mongo_id")
        (query,) = executed(client)[0]
        assert query == (
            "CREATE TABLE IF NOT EXISTS `orders` ("
            "`surrogate_id` BIGINT AUTO_INCREMENT PRIMARY KEY, "
            "`mongo_id` VARCHAR(255) NOT NULL UNIQUE)"
        )
        client.connection.commit.assert_called_once()

    def test_add_column(self, client):
        client.add_column("orders", "paid", ColumnType.BOOLEAN)
        assert executed(client)[0] == ("ALTER TABLE `orders` ADD COLUMN `paid` BOOLEAN NULL",)

    def test_modify_column(self, client):
        client.modify_column("orders", "total", ColumnType.NUMERIC)
        assert executed(client)[0] == ("ALTER TABLE `orders` MODIFY COLUMN `total` DECIMAL(65,30) NULL",)

    def test_rejected_ddl_raises_schema_error(self, client):
        cursor = client.connection.cursor.return_value
        cursor.execute.side_effect = pymysql.err.OperationalError(1118, "Row size too large")

        with pytest.raises(SchemaEvolutionError) as exc_info:
            client.add_column("orders", "blob", ColumnType.TEXT)

        assert exc_info.value.column == "blob"
        assert exc_info.value.table == "orders"
        client.connection.rollback.assert_called_once()

    def test_not_connected(self):
        db = MySQLClient("localhost", 3306, "root", "root", "docsync")
        with pytest.raises(StoreConnectionError):
            db.add_column("orders", "x", ColumnType.TEXT)


class TestMetadata:
    def test_get_current_columns(self, client):
        cursor = client.connection.cursor.return_value
        cursor.fetchall.return_value = [("surrogate_id", "bigint"), ("total", "int")]
        assert client.get_current_columns("orders") == {"surrogate_id": "bigint", "total": "int"}
        query, params = executed(client)[0]
        assert "INFORMATION_SCHEMA.COLUMNS" in query
        assert params == ("docsync", "orders")

    def test_table_exists(self, client):
        cursor = client.connection.cursor.return_value
        cursor.fetchone.return_value = (1,)
        assert client.table_exists("orders")
        cursor.fetchone.return_value = (0,)
        assert not client.table_exists("orders")


class TestUpsertRow:
    def test_parameters_passed_in_order(self, client):
        client.upsert_row("orders", ["mongo_id", "total"], ["a", 1], "mongo_id")
        query, params = executed(client)[0]
        assert query.startswith("INSERT INTO `orders`")
        assert params == ("a", 1)
        client.connection.commit.assert_called_once()

    def test_failure_raises_write_error(self, client):
        cursor = client.connection.cursor.return_value
        cursor.execute.side_effect = pymysql.err.DataError(1406, "Data too long")

        with pytest.raises(WriteError) as exc_info:
            client.upsert_row("orders", ["mongo_id", "total"], ["a", 1], "mongo_id")

        assert exc_info.value.natural_key == "a"
        client.connection.rollback.assert_called_once()

    def test_dropped_link_is_retried_with_reconnect(self, client):
        cursor = client.connection.cursor.return_value
        cursor.execute.side_effect = [pymysql.err.OperationalError(2013, "Lost connection"), None, None]

        client.upsert_row("orders", ["mongo_id"], ["a"], "mongo_id")

        client.connection.ping.assert_called_once_with(reconnect=True)

    def test_exhausted_retries_raise_connection_error(self, client):
        cursor = client.connection.cursor.return_value
        cursor.execute.side_effect = pymysql.err.OperationalError(2006, "MySQL server has gone away")

        with pytest.raises(StoreConnectionError):
            client.upsert_row("orders", ["mongo_id"], ["a"], "mongo_id")


class TestTransientErrors:
    @pytest.mark.parametrize("code", [2003, 2006, 2013, 2055])
    def test_link_errors_are_transient(self, code):
        assert is_transient_mysql_error(pymysql.err.OperationalError(code, "gone"))

    def test_statement_errors_are_not(self):
        assert not is_transient_mysql_error(pymysql.err.OperationalError(1118, "Row size too large"))
        assert not is_transient_mysql_error(pymysql.err.ProgrammingError(1064, "syntax"))

    def test_interface_error_is_transient(self):
        assert is_transient_mysql_error(pymysql.err.InterfaceError(0, ""))

    def test_store_connection_error_is_not_retried(self):
        assert not is_transient_mysql_error(StoreConnectionError("Not connected to MySQL"))
