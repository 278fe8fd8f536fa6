# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# Shared fixtures for all tests. No live databases are used:
#
# - FakeSource  → in-memory stand-in for MongoClient
#                 (list_collection_names / find_one / find_all)
# - FakeSink    → in-memory stand-in for MySQLClient
#                 (table_exists / get_current_columns / create_table /
#                  add_column / modify_column / upsert_row)
#
# FakeSink mimics the MySQL behaviour the sync loop relies on:
# ON DUPLICATE KEY UPDATE only touches the listed columns, new
# columns start as NULL on existing rows, duplicate ADD COLUMN is
# rejected, column names are case-insensitive, and a column listed
# twice or a NaN/infinity parameter fails the upsert.
# ==============================================

import math
from typing import Any, Dict, List, Optional, Sequence

import pytest

from docsync.analysis.decision import ColumnType
from docsync.collection_sync import CollectionSync
from docsync.errors import SchemaEvolutionError, WriteError
from docsync.normalization.document_translator import DocumentTranslator
from docsync.normalization.type_detector import TypeDetector
from docsync.pipeline import SyncScheduler
from docsync.storage.collection_enumerator import CollectionEnumerator
from docsync.storage.schema_reconciler import SchemaReconciler
from docsync.storage.upsert_writer import UpsertWriter


DATA_TYPES = {
    ColumnType.BOOLEAN: "tinyint",
    ColumnType.INTEGER: "int",
    ColumnType.BIGINT: "bigint",
    ColumnType.NUMERIC: "decimal",
    ColumnType.TEXT: "text",
}


class FakeSource:
    def __init__(self, collections: Optional[Dict[str, List[dict]]] = None):
        self.collections: Dict[str, List[dict]] = collections or {}
        self.find_all_calls: List[str] = []

    def list_collection_names(self):
        return set(self.collections)

    def find_one(self, collection_name):
        docs = self.collections.get(collection_name) or []
        return TypeDetector.tag_document(docs[0]) if docs else None

    def find_all(self, collection_name):
        self.find_all_calls.append(collection_name)
        return [TypeDetector.tag_document(doc) for doc in self.collections.get(collection_name, [])]


class FakeSink:
    def __init__(self):
        self.tables: Dict[str, Dict[str, Any]] = {}
        self.ddl: List[str] = []
        self.reject_columns = set()
        self.reject_modify = set()
        self.fail_keys = set()
        self.upserts = 0
        self.metadata_reads = 0
        self._next_surrogate = 1

    # -- schema ---------------------------------------------------------

    def table_exists(self, table_name):
        return table_name in self.tables

    def get_current_columns(self, table_name):
        self.metadata_reads += 1
        return dict(self.tables[table_name]["columns"])

    def create_table(self, table_name, surrogate_key_column, natural_key_column):
        if table_name in self.tables:
            return
        self.ddl.append(f"CREATE TABLE {table_name}")
        self.tables[table_name] = {
            "columns": {surrogate_key_column: "bigint", natural_key_column: "varchar"},
            "surrogate": surrogate_key_column,
            "natural": natural_key_column,
            "rows": {},
        }

    def add_column(self, table_name, column_name, column_type):
        table = self.tables[table_name]
        if column_name in self.reject_columns or self._find(table, column_name) is not None:
            raise SchemaEvolutionError(f"ADD COLUMN {column_name} rejected", table=table_name, column=column_name)
        self.ddl.append(f"ADD {table_name}.{column_name} {column_type.sql_type}")
        table["columns"][column_name] = DATA_TYPES[column_type]
        for row in table["rows"].values():
            row[column_name] = None

    def modify_column(self, table_name, column_name, column_type):
        if column_name in self.reject_modify:
            raise SchemaEvolutionError(f"MODIFY COLUMN {column_name} rejected", table=table_name, column=column_name)
        table = self.tables[table_name]
        actual = self._find(table, column_name)
        self.ddl.append(f"MODIFY {table_name}.{actual} {column_type.sql_type}")
        table["columns"][actual] = DATA_TYPES[column_type]

    # -- rows -----------------------------------------------------------

    def upsert_row(self, table_name, columns: Sequence[str], values: Sequence[Any], natural_key_column):
        table = self.tables[table_name]
        record = dict(zip(columns, values))
        key = record[natural_key_column]
        if key in self.fail_keys:
            raise WriteError(f"upsert of {key} failed", table=table_name, natural_key=key)
        # what MySQL refuses: a column listed twice, NaN or infinity as a number
        if len({column.lower() for column in columns}) != len(columns):
            raise WriteError(f"Column specified twice in {list(columns)}", table=table_name, natural_key=key)
        if any(isinstance(value, float) and not math.isfinite(value) for value in values):
            raise WriteError(f"Non-finite number in row {key}", table=table_name, natural_key=key)
        for column in columns:
            if self._find(table, column) is None:
                raise WriteError(f"Unknown column {column}", table=table_name, natural_key=key)

        self.upserts += 1
        existing = table["rows"].get(key)
        if existing is None:
            existing = {name: None for name in table["columns"]}
            existing[table["surrogate"]] = self._next_surrogate
            self._next_surrogate += 1
            table["rows"][key] = existing
        existing.update(record)

    # -- helpers for assertions ----------------------------------------

    def column_types(self, table_name) -> Dict[str, ColumnType]:
        return {
            name: ColumnType.from_sql_type(dtype)
            for name, dtype in self.tables[table_name]["columns"].items()
        }

    def rows(self, table_name) -> Dict[str, dict]:
        return self.tables[table_name]["rows"]

    @staticmethod
    def _find(table, column_name) -> Optional[str]:
        for name in table["columns"]:
            if name.lower() == column_name.lower():
                return name
        return None


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def reconciler(sink):
    return SchemaReconciler(sink)


@pytest.fixture
def translator(reconciler):
    return DocumentTranslator(reconciler)


@pytest.fixture
def make_scheduler(source, sink):
    """Build a full scheduler over the fakes; kwargs go to SchemaReconciler."""
    def _make(**reconciler_kwargs) -> SyncScheduler:
        reconciler = SchemaReconciler(sink, **reconciler_kwargs)
        collection_sync = CollectionSync(
            source,
            reconciler,
            writer=UpsertWriter(sink, natural_key_column=SchemaReconciler.NATURAL_KEY_COLUMN),
        )
        return SyncScheduler(
            CollectionEnumerator(source),
            collection_sync,
            reconciler,
            interval_seconds=0.01,
        )
    return _make
