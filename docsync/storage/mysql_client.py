# ==============================================
# MySQLClient
# ==============================================
#
# PURPOSE:
#   Manages the MySQL (sink) connection and every SQL statement the
#   sync loop issues: relation creation, additive column DDL,
#   INFORMATION_SCHEMA reads and parameterized upserts.
#
# WHY THIS CLASS EXISTS:
#   There is no predefined schema. Tables and columns are created
#   ON THE FLY from what the TypeClassifier infers. This class is the
#   only place that knows MySQL syntax; everything above it talks in
#   table names, column names and ColumnTypes.
#
# CLASS: MySQLClient
# ------------------
#   Stateful: holds connection to MySQL.
#
#   Constructor:
#   ------------
#   - __init__(host, port, user, password, database, retry=None)
#       Store connection params. Don't connect yet.
#
#   Methods:
#   --------
#   - connect() -> None
#       Establish connection. Create database if it doesn't exist.
#
#   - disconnect() -> None
#
#   - table_exists(table_name) -> bool
#   - get_current_columns(table_name) -> dict[str, str]
#       Column name → INFORMATION_SCHEMA.DATA_TYPE.
#
#   - create_table(table_name, surrogate_key_column, natural_key_column) -> None
#   - add_column(table_name, column_name, column_type) -> None
#   - modify_column(table_name, column_name, column_type) -> None
#       Raise SchemaEvolutionError when the DDL is rejected.
#
#   - upsert_row(table_name, columns, values, natural_key_column) -> None
#       INSERT ... ON DUPLICATE KEY UPDATE; raise WriteError on failure.
#
#   Every call goes through call_with_retry() so transient
#   connection drops are retried with backoff and a reconnect.
#
#   Context Manager:
#   ----------------
#   - __enter__ / __exit__ for `with MySQLClient(...) as db:` usage.
#
# ==============================================

from typing import Any, Callable, List, Optional, Sequence, TypeVar

import pymysql
import pymysql.err
from loguru import logger

from docsync.analysis.decision import ColumnType
from docsync.config import RetryConfig
from docsync.errors import SchemaEvolutionError, StoreConnectionError, WriteError
from docsync.retry import call_with_retry


T = TypeVar("T")

# Client-side error codes that mean "the link dropped", not "the statement is wrong"
TRANSIENT_MYSQL_ERROR_CODES = {2003, 2006, 2013, 2055}

NATURAL_KEY_SQL_TYPE = "VARCHAR(255)"


def is_transient_mysql_error(error: BaseException) -> bool:
    if isinstance(error, pymysql.err.InterfaceError):
        return True
    if isinstance(error, pymysql.err.OperationalError):
        code = error.args[0] if error.args else None
        return code in TRANSIENT_MYSQL_ERROR_CODES
    return isinstance(error, (ConnectionError, TimeoutError)) and not isinstance(error, StoreConnectionError)


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier, doubling embedded backticks."""
    return "`" + str(name).replace("`", "``") + "`"


class MySQLClient:
    def __init__(self, host, port, user, password, database, retry: Optional[RetryConfig] = None):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.retry = retry or RetryConfig()
        self.connection = None

    def connect(self) -> None:
        # Establish connection to MySQL, create database if it doesn't exist
        call_with_retry(
            self._open,
            description=f"MySQL connect to {self.host}:{self.port}",
            is_transient=is_transient_mysql_error,
            policy=self.retry,
        )
        logger.info(f"Connected to MySQL {self.host}:{self.port}/{self.database}")

    def _open(self) -> None:
        self.connection = pymysql.connect(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            charset="utf8mb4",
        )
        cursor = self.connection.cursor()
        cursor.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.database)}")
        cursor.execute(f"USE {quote_identifier(self.database)}")
        cursor.close()

    def disconnect(self) -> None:
        # Close connection cleanly
        if self.connection:
            try:
                self.connection.close()
            except pymysql.err.Error as e:
                logger.debug(f"Ignoring error while closing MySQL connection: {e}")
            self.connection = None
            logger.info("Disconnected from MySQL")

    def table_exists(self, table_name: str) -> bool:
        row = self._fetch_one(
            "SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
            (self.database, table_name),
        )
        if row is None:
            raise RuntimeError("COUNT query returned no rows")
        return row[0] > 0

    def get_current_columns(self, table_name: str) -> dict[str, str]:
        # Query INFORMATION_SCHEMA to get current column names and types
        rows = self._fetch_rows(
            "SELECT COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s "
            "ORDER BY ORDINAL_POSITION",
            (self.database, table_name),
        )
        # Each row is a tuple: (column_name, data_type)
        return {str(name): str(dtype) for name, dtype in rows}

    def create_table(self, table_name: str, surrogate_key_column: str, natural_key_column: str) -> None:
        query = (
            f"CREATE TABLE IF NOT EXISTS {quote_identifier(table_name)} ("
            f"{quote_identifier(surrogate_key_column)} BIGINT AUTO_INCREMENT PRIMARY KEY, "
            f"{quote_identifier(natural_key_column)} {NATURAL_KEY_SQL_TYPE} NOT NULL UNIQUE"
            f")"
        )
        self._ddl(query, table_name)

    def add_column(self, table_name: str, column_name: str, column_type: ColumnType) -> None:
        query = (
            f"ALTER TABLE {quote_identifier(table_name)} "
            f"ADD COLUMN {quote_identifier(column_name)} {column_type.sql_type} NULL"
        )
        self._ddl(query, table_name, column_name)

    def modify_column(self, table_name: str, column_name: str, column_type: ColumnType) -> None:
        query = (
            f"ALTER TABLE {quote_identifier(table_name)} "
            f"MODIFY COLUMN {quote_identifier(column_name)} {column_type.sql_type} NULL"
        )
        self._ddl(query, table_name, column_name)

    def upsert_row(
        self,
        table_name: str,
        columns: Sequence[str],
        values: Sequence[Any],
        natural_key_column: str
    ) -> None:
        """
        Insert one row or replace every non-key column of the existing row.

        Args:
            table_name: Target relation
            columns: Column names, natural key included
            values: Values in the same order as `columns`
            natural_key_column: Column carrying the UNIQUE constraint
        """
        query = build_upsert_query(table_name, columns, natural_key_column)
        natural_key = values[list(columns).index(natural_key_column)] if natural_key_column in columns else None

        def _execute() -> None:
            cursor = self._require_connection().cursor()
            try:
                cursor.execute(query, tuple(values))
                self.connection.commit()
            finally:
                cursor.close()

        try:
            self._with_retry(_execute, f"upsert into {table_name}")
        except StoreConnectionError:
            raise
        except pymysql.err.MySQLError as e:
            self._rollback()
            raise WriteError(
                f"Upsert into {table_name} failed: {e}",
                table=table_name,
                natural_key=natural_key,
                details={"mysql_error": str(e)},
            ) from e

    def _ddl(self, query: str, table_name: str, column_name: Optional[str] = None) -> None:
        def _execute() -> None:
            cursor = self._require_connection().cursor()
            try:
                cursor.execute(query)
                self.connection.commit()
            finally:
                cursor.close()

        try:
            self._with_retry(_execute, f"DDL on {table_name}")
        except StoreConnectionError:
            raise
        except pymysql.err.MySQLError as e:
            self._rollback()
            raise SchemaEvolutionError(
                f"DDL rejected on {table_name}: {e}",
                table=table_name,
                column=column_name,
                details={"query": query, "mysql_error": str(e)},
            ) from e

    def _fetch_one(self, query: str, params: tuple) -> Optional[tuple]:
        def _execute():
            cursor = self._require_connection().cursor()
            try:
                cursor.execute(query, params)
                return cursor.fetchone()
            finally:
                cursor.close()

        return self._with_retry(_execute, "MySQL query")

    def _fetch_rows(self, query: str, params: tuple) -> List[tuple]:
        def _execute():
            cursor = self._require_connection().cursor()
            try:
                cursor.execute(query, params)
                return list(cursor.fetchall())
            finally:
                cursor.close()

        return self._with_retry(_execute, "MySQL query")

    def _with_retry(self, operation: Callable[[], T], description: str) -> T:
        return call_with_retry(
            operation,
            description=description,
            is_transient=is_transient_mysql_error,
            policy=self.retry,
            on_retry=self._reconnect,
        )

    def _reconnect(self) -> None:
        if self.connection is None:
            self._open()
            return
        self.connection.ping(reconnect=True)
        cursor = self.connection.cursor()
        cursor.execute(f"USE {quote_identifier(self.database)}")
        cursor.close()

    def _rollback(self) -> None:
        if self.connection is None:
            return
        try:
            self.connection.rollback()
        except pymysql.err.Error as e:
            logger.debug(f"Rollback failed: {e}")

    def _require_connection(self):
        if self.connection is None:
            raise StoreConnectionError("Not connected to MySQL")
        return self.connection

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()


def build_upsert_query(table_name: str, columns: Sequence[str], natural_key_column: str) -> str:
    """
    Build the parameterized INSERT ... ON DUPLICATE KEY UPDATE statement.

    Every column except the natural key is replaced on conflict. When the
    row carries nothing but the key, the key is re-assigned to itself so
    the statement stays a no-op update instead of a duplicate-key error.
    """
    column_names = ", ".join(quote_identifier(col) for col in columns)
    placeholders = ", ".join(["%s"] * len(columns))

    update_parts = [
        f"{quote_identifier(col)} = VALUES({quote_identifier(col)})"
        for col in columns
        if col != natural_key_column
    ]
    if not update_parts:
        key = quote_identifier(natural_key_column)
        update_parts = [f"{key} = {key}"]

    return (
        f"INSERT INTO {quote_identifier(table_name)} ({column_names}) "
        f"VALUES ({placeholders}) "
        f"ON DUPLICATE KEY UPDATE {', '.join(update_parts)}"
    )
