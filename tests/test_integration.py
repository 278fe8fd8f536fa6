# ==============================================
# Integration Tests
# ==============================================
#
# These tests verify the entire sync loop end-to-end:
#
#   FakeSource → CollectionEnumerator → CollectionSync
#              → SchemaReconciler / DocumentTranslator / UpsertWriter
#              → FakeSink
#
# NOTES:
# ------
# - No live MySQL or MongoDB; see conftest.py for the fakes
# - Each test drives SyncScheduler.run_cycle() directly
# ==============================================

import copy
from decimal import Decimal

from bson.decimal128 import Decimal128

from docsync.analysis.decision import ColumnType


def snapshot(sink):
    return copy.deepcopy({name: t["rows"] for name, t in sink.tables.items()})


class TestScenarios:
    def test_first_sync_creates_table_and_row(self, source, sink, make_scheduler):
        """A new collection gets a table, typed columns and one row."""
        source.collections["orders"] = [{"_id": "abc123", "total": 42, "paid": True, "note": ""}]

        report = make_scheduler().run_cycle()

        assert list(sink.tables["orders"]["columns"]) == ["surrogate_id", "mongo_id", "total", "paid", "note"]
        types = sink.column_types("orders")
        assert types["total"] is ColumnType.INTEGER
        assert types["paid"] is ColumnType.BOOLEAN
        assert types["note"] is ColumnType.TEXT

        row = sink.rows("orders")["abc123"]
        assert row["total"] == 42
        assert row["paid"] is True
        assert row["note"] is None
        assert row["surrogate_id"] == 1

        assert report.ok
        assert report.collections[0].table_created
        assert report.rows_written == 1

    def test_resync_unchanged_is_a_no_op(self, source, sink, make_scheduler):
        source.collections["orders"] = [{"_id": "abc123", "total": 42, "paid": True, "note": ""}]
        scheduler = make_scheduler()

        scheduler.run_cycle()
        before = snapshot(sink)
        ddl_before = list(sink.ddl)
        scheduler.run_cycle()

        assert snapshot(sink) == before
        assert sink.ddl == ddl_before
        assert len(sink.rows("orders")) == 1

    def test_fractional_value_widens_integer_column(self, source, sink, make_scheduler):
        source.collections["orders"] = [{"_id": "abc123", "total": 42}]
        scheduler = make_scheduler()
        scheduler.run_cycle()

        source.collections["orders"] = [{"_id": "abc123", "total": 42.5}]
        report = scheduler.run_cycle()

        assert sink.column_types("orders")["total"] is ColumnType.NUMERIC
        assert sink.rows("orders")["abc123"]["total"] == 42.5
        assert report.collections[0].columns_widened == ["total"]

    def test_fractional_value_rejected_under_reject_policy(self, source, sink, make_scheduler):
        source.collections["orders"] = [{"_id": "abc123", "total": 42}, {"_id": "b", "total": 7}]
        make_scheduler(widen_policy="reject").run_cycle()

        source.collections["orders"] = [{"_id": "abc123", "total": 42.5}, {"_id": "b", "total": 8}]
        report = make_scheduler(widen_policy="reject").run_cycle()

        assert sink.column_types("orders")["total"] is ColumnType.INTEGER
        assert sink.rows("orders")["abc123"]["total"] == 42
        assert sink.rows("orders")["b"]["total"] == 8
        failures = report.collections[0].document_failures
        assert [(f.natural_key, f.error_type) for f in failures] == [("abc123", "TypeConflictError")]

    def test_new_field_in_later_cycle(self, source, sink, make_scheduler):
        """Older rows get NULL in the new column until they are rewritten."""
        source.collections["orders"] = [{"_id": "a", "total": 1}, {"_id": "b", "total": 2}]
        scheduler = make_scheduler()
        scheduler.run_cycle()

        source.collections["orders"] = [{"_id": "a", "total": 1}, {"_id": "b", "total": 2, "coupon": "X1"}]
        report = scheduler.run_cycle()

        assert sink.column_types("orders")["coupon"] is ColumnType.TEXT
        assert sink.rows("orders")["a"]["coupon"] is None
        assert sink.rows("orders")["b"]["coupon"] == "X1"
        assert report.collections[0].columns_added == ["coupon"]


class TestSyncProperties:
    def test_schema_is_monotone(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "a": 1, "b": True, "c": "x"}]
        scheduler = make_scheduler()
        scheduler.run_cycle()
        first = sink.column_types("m")

        source.collections["m"] = [{"_id": "1", "a": 2}]
        scheduler.run_cycle()
        second = sink.column_types("m")

        for column, column_type in first.items():
            assert column in second
            assert second[column].rank >= column_type.rank

    def test_missing_fields_are_nulled_on_rewrite(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "a": 1, "b": "keep?"}]
        scheduler = make_scheduler()
        scheduler.run_cycle()

        source.collections["m"] = [{"_id": "1", "a": 2}]
        scheduler.run_cycle()

        row = sink.rows("m")["1"]
        assert row["a"] == 2
        assert row["b"] is None

    def test_empty_string_and_null_are_stored_as_null(self, source, sink, make_scheduler):
        source.collections["m"] = [
            {"_id": "1", "n": 5, "s": "x", "f": True},
            {"_id": "2", "n": "", "s": None, "f": ""},
        ]
        make_scheduler().run_cycle()

        row = sink.rows("m")["2"]
        assert row["n"] is None
        assert row["s"] is None
        assert row["f"] is None

    def test_converges_to_source(self, source, sink, make_scheduler):
        source.collections["users"] = [{"_id": str(i), "age": i} for i in range(5)]
        source.collections["events"] = [{"_id": "e1", "kind": "click", "at_ms": 2 ** 40}]
        make_scheduler().run_cycle()

        assert set(sink.rows("users")) == {"0", "1", "2", "3", "4"}
        assert sink.rows("users")["3"]["age"] == 3
        assert sink.column_types("events")["at_ms"] is ColumnType.BIGINT
        assert sink.rows("events")["e1"]["at_ms"] == 2 ** 40

    def test_same_key_twice_last_write_wins(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "v": 1}, {"_id": "1", "v": 2.5}]
        make_scheduler().run_cycle()

        assert len(sink.rows("m")) == 1
        assert sink.rows("m")["1"]["v"] == 2.5
        assert sink.column_types("m")["v"] is ColumnType.NUMERIC

    def test_collection_names_map_to_lower_case_tables(self, source, sink, make_scheduler):
        source.collections["UserEvents"] = [{"_id": "1", "x": 1}]
        make_scheduler().run_cycle()
        assert "userevents" in sink.tables

    def test_source_id_field_kept_as_text(self, source, sink, make_scheduler):
        source.collections["legacy"] = [{"_id": "m1", "id": 17}]
        make_scheduler().run_cycle()

        assert sink.column_types("legacy")["id"] is ColumnType.TEXT
        assert sink.rows("legacy")["m1"]["id"] == "17"
        assert sink.rows("legacy")["m1"]["surrogate_id"] == 1

    def test_case_variant_fields_share_one_column(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "Name": "first", "name": "second"}]
        report = make_scheduler().run_cycle()

        assert report.ok
        assert list(sink.tables["m"]["columns"]) == ["surrogate_id", "mongo_id", "Name"]
        assert sink.rows("m")["1"]["Name"] == "second"

    def test_integers_beyond_bigint_stored_as_decimal(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "big": 1e20, "huge": Decimal128("1E+20")}]
        report = make_scheduler().run_cycle()

        assert report.ok
        types = sink.column_types("m")
        assert types["big"] is ColumnType.NUMERIC
        assert types["huge"] is ColumnType.NUMERIC
        assert sink.rows("m")["1"]["huge"] == 10 ** 20

    def test_decimal_values_keep_their_precision(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "amount": Decimal128("12345678901234567890.123")}]
        make_scheduler().run_cycle()

        assert sink.rows("m")["1"]["amount"] == Decimal("12345678901234567890.123")

    def test_widening_bigint_keeps_stored_values_exact(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "a", "n": 2 ** 60 + 1}]
        scheduler = make_scheduler()
        scheduler.run_cycle()

        source.collections["m"] = [{"_id": "a", "n": 2 ** 60 + 1}, {"_id": "b", "n": 0.5}]
        report = scheduler.run_cycle()

        assert report.ok
        assert sink.column_types("m")["n"] is ColumnType.NUMERIC
        assert "MODIFY m.n DECIMAL(65,30)" in sink.ddl
        assert sink.rows("m")["a"]["n"] == 2 ** 60 + 1

    def test_non_finite_numbers_stored_as_null(self, source, sink, make_scheduler):
        source.collections["m"] = [
            {"_id": "1", "v": 1.5},
            {"_id": "2", "v": float("nan")},
            {"_id": "3", "v": float("-inf")},
        ]
        report = make_scheduler().run_cycle()

        assert report.ok
        assert sink.rows("m")["2"]["v"] is None
        assert sink.rows("m")["3"]["v"] is None


class TestFailureIsolation:
    def test_write_error_isolated_to_one_document(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "v": 1}, {"_id": "2", "v": 2}, {"_id": "3", "v": 3}]
        sink.fail_keys.add("2")

        report = make_scheduler().run_cycle()

        assert set(sink.rows("m")) == {"1", "3"}
        collection = report.collections[0]
        assert collection.rows_written == 2
        assert [(f.natural_key, f.error_type) for f in collection.document_failures] == [("2", "WriteError")]
        assert not report.ok

    def test_document_without_identifier_is_isolated(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "v": 1}, {"v": 2}]
        report = make_scheduler().run_cycle()

        assert set(sink.rows("m")) == {"1"}
        assert report.collections[0].document_failures[0].natural_key is None

    def test_rejected_column_does_not_block_the_rest(self, source, sink, make_scheduler):
        source.collections["m"] = [{"_id": "1", "bad": 1, "good": 2}]
        sink.reject_columns.add("bad")

        report = make_scheduler().run_cycle()

        assert sink.rows("m")["1"]["good"] == 2
        assert "bad" not in sink.tables["m"]["columns"]
        assert [f.column for f in report.collections[0].schema_failures] == ["bad"]

    def test_rejected_widen_keeps_values_that_fit(self, source, sink, make_scheduler):
        """A column that cannot be widened still accepts values of its type."""
        source.collections["orders"] = [{"_id": "a", "total": 5}]
        scheduler = make_scheduler()
        scheduler.run_cycle()

        sink.reject_modify.add("total")
        source.collections["orders"] = [
            {"_id": "b", "total": "abc"},
            {"_id": "a", "total": 5},
            {"_id": "c", "total": 7},
        ]
        report = scheduler.run_cycle()

        rows = sink.rows("orders")
        assert rows["a"]["total"] == 5
        assert rows["c"]["total"] == 7
        assert "b" not in rows
        assert sink.column_types("orders")["total"] is ColumnType.INTEGER

        collection = report.collections[0]
        assert collection.rows_written == 2
        assert [(f.natural_key, f.error_type) for f in collection.document_failures] == [
            ("b", "SchemaEvolutionError")
        ]
        assert [f.column for f in collection.schema_failures] == ["total"]

    def test_rejected_table_aborts_only_that_collection(self, source, sink, make_scheduler):
        from docsync.errors import SchemaEvolutionError

        original = sink.create_table

        def create_table(table_name, surrogate, natural):
            if table_name == "broken":
                raise SchemaEvolutionError("no space", table=table_name)
            original(table_name, surrogate, natural)

        sink.create_table = create_table
        source.collections["broken"] = [{"_id": "1"}]
        source.collections["fine"] = [{"_id": "1", "v": 1}]

        report = make_scheduler().run_cycle()

        by_name = {c.collection: c for c in report.collections}
        assert by_name["broken"].aborted == "no space"
        assert by_name["fine"].rows_written == 1


class TestDiscovery:
    def test_empty_collection_creates_no_table(self, source, sink, make_scheduler):
        source.collections["empty"] = []
        report = make_scheduler().run_cycle()

        assert "empty" not in sink.tables
        assert report.collections[0].documents_seen == 0

    def test_system_collections_are_skipped(self, source, sink, make_scheduler):
        source.collections["system.views"] = [{"_id": "1"}]
        source.collections["orders"] = [{"_id": "1"}]
        make_scheduler().run_cycle()

        assert source.find_all_calls == ["orders"]

    def test_collections_visited_in_name_order(self, source, sink, make_scheduler):
        for name in ("c", "a", "b"):
            source.collections[name] = [{"_id": "1"}]
        report = make_scheduler().run_cycle()

        assert [c.collection for c in report.collections] == ["a", "b", "c"]

    def test_collection_appearing_later_is_picked_up(self, source, sink, make_scheduler):
        scheduler = make_scheduler()
        scheduler.run_cycle()
        assert sink.tables == {}

        source.collections["late"] = [{"_id": "1", "v": 1}]
        scheduler.run_cycle()
        assert sink.rows("late")["1"]["v"] == 1
