# ==============================================
# SchemaReconciler
# ==============================================
#
# PURPOSE:
#   Makes sure a relation and its columns exist for a collection.
#   Additive only: relations are created, columns are added or
#   widened along the type lattice, nothing is ever dropped or
#   narrowed.
#
# WHY THIS CLASS EXISTS:
#   The relational schema is never declared up front. It follows the
#   documents: the first document creates the relation, the first
#   observation of a field creates its column, and a value that no
#   longer fits its column widens it (or is rejected, depending on
#   the widen policy).
#
# CLASS: SchemaReconciler
# -----------------------
#   Stateful: caches column metadata once per relation per cycle.
#
#   Constructor:
#   ------------
#   - __init__(sink, classifier=None, widen_policy="widen", id_field="_id")
#
#   Methods:
#   --------
#   - begin_cycle() -> None
#       Drop cached metadata and the per-cycle sets of failed columns.
#
#   - table_name(collection) -> str       (lower-cased collection name)
#   - column_name(field) -> str           (reserved names get "doc_")
#
#   - reconcile(collection, sample) -> ReconcileResult
#       Create the relation if absent, add a column for every field
#       of the representative sample not backed by one yet.
#
#   - ensure_field(table, field, value, result=None) -> ColumnType | None
#       Just-in-time entry point used by the DocumentTranslator.
#
#   - columns(table) -> dict[str, ColumnType]
#       Current writable data columns (keys excluded), from the cache.
#
# RULES:
# ------
#   1. A DDL rejection is caught per column and logged. A column whose
#      ADD was rejected is unavailable until the next cycle. A column
#      whose widening was rejected keeps its type for the rest of the
#      cycle: values that fit are still written, a value that does not
#      fails its own document only.
#   2. A column named "id" is always TEXT; an existing non-TEXT "id"
#      column is forcibly retyped.
#   3. Reconciliation of one relation is serialized by a lock.
#   4. Metadata is re-read only after a successful DDL write.
#
# ==============================================

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set

from loguru import logger

from docsync.analysis.classifier import TypeClassifier
from docsync.analysis.decision import ColumnDecision, ColumnType
from docsync.errors import SchemaEvolutionError, TypeConflictError
from docsync.normalization.type_detector import TaggedValue


@dataclass
class _Column:
    name: str
    column_type: ColumnType


@dataclass
class ReconcileResult:
    """What one reconciliation pass (or one document's JIT evolution) changed."""
    table: str
    created: bool = False
    added: List[ColumnDecision] = field(default_factory=list)
    widened: List[ColumnDecision] = field(default_factory=list)
    failures: List[SchemaEvolutionError] = field(default_factory=list)

    def merge(self, other: "ReconcileResult") -> None:
        self.created = self.created or other.created
        self.added.extend(other.added)
        self.widened.extend(other.widened)
        self.failures.extend(other.failures)


class SchemaReconciler:
    """
    Additive schema evolution for one sink.

    The sink must provide table_exists, get_current_columns, create_table,
    add_column and modify_column (see MySQLClient).
    """

    SURROGATE_KEY_COLUMN = "surrogate_id"
    NATURAL_KEY_COLUMN = "mongo_id"
    RESERVED_PREFIX = "doc_"

    def __init__(
        self,
        sink,
        classifier: Optional[TypeClassifier] = None,
        widen_policy: str = "widen",
        id_field: str = "_id"
    ):
        self._sink = sink
        self._classifier = classifier or TypeClassifier()
        self._widen_policy = widen_policy
        self._id_field = id_field

        # table -> lower-cased column name -> column; absent = not loaded this cycle
        self._cache: Dict[str, Dict[str, _Column]] = {}
        # per cycle: columns whose ADD was rejected, columns whose widening was rejected
        self._unavailable: Dict[str, Set[str]] = {}
        self._frozen: Dict[str, Set[str]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def key_columns(self) -> Set[str]:
        return {self.SURROGATE_KEY_COLUMN.lower(), self.NATURAL_KEY_COLUMN.lower()}

    def begin_cycle(self) -> None:
        self._cache.clear()
        self._unavailable.clear()
        self._frozen.clear()

    def table_name(self, collection: str) -> str:
        return collection.lower()

    def column_name(self, field_name: str) -> str:
        # MySQL column names are case-insensitive
        if field_name.lower() in self.key_columns:
            return f"{self.RESERVED_PREFIX}{field_name}"
        return field_name

    def columns(self, table: str) -> Dict[str, ColumnType]:
        with self._lock_for(table):
            cached = self._load(table)
            unavailable = self._unavailable.get(table, set())
            return {
                col.name: col.column_type
                for key, col in cached.items()
                if key not in self.key_columns and key not in unavailable
            }

    def reconcile(self, collection: str, sample: Mapping[str, TaggedValue]) -> ReconcileResult:
        """
        Ensure the relation for `collection` can hold every field of `sample`.

        Args:
            collection: Source collection name
            sample: Representative document (field -> tagged value)

        Returns:
            ReconcileResult with created relation, added/widened columns
            and per-column failures

        Raises:
            SchemaEvolutionError: the relation itself could not be created
        """
        table = self.table_name(collection)
        result = ReconcileResult(table=table)

        with self._lock_for(table):
            self._ensure_relation(table, result)
            for field_name, value in sample.items():
                if field_name == self._id_field:
                    continue
                try:
                    self.ensure_field(table, field_name, value, result)
                except SchemaEvolutionError as e:
                    # Documents carrying the value are rejected one by one later
                    logger.debug(f"Not widening {table}: {e.message}")

        return result

    def ensure_field(
        self,
        table: str,
        field_name: str,
        value: TaggedValue,
        result: Optional[ReconcileResult] = None
    ) -> Optional[ColumnType]:
        """
        Make sure `field_name` has a column able to hold `value`.

        Args:
            table: Relation name
            field_name: Source field name
            value: Incoming tagged value
            result: Accumulator for added/widened columns and failures

        Returns:
            The column's type after evolution, or None when the column
            could not be added this cycle

        Raises:
            TypeConflictError: value does not fit and widen policy is "reject"
            SchemaEvolutionError: value does not fit and widening the column
                was rejected (now or earlier in the cycle)
        """
        result = result if result is not None else ReconcileResult(table=table)
        column_name = self.column_name(field_name)
        key = column_name.lower()

        with self._lock_for(table):
            if key in self._unavailable.get(table, set()):
                return None

            columns = self._ensure_relation(table, result)
            existing = columns.get(key)

            if existing is None:
                decision = self._classifier.classify_field(field_name, [value], column_name)
                return self._add_column(table, decision, result)

            if key in self._frozen.get(table, set()):
                return self._fit_frozen(table, existing, value)

            if field_name in TypeClassifier.TEXT_ONLY_FIELDS and existing.column_type is not ColumnType.TEXT:
                decision = ColumnDecision(field_name, existing.name, ColumnType.TEXT, "'id' is always stored as text")
                return self._widen_column(table, existing, decision, value, result)

            if not value.is_informative:
                return existing.column_type

            needed = self._classifier.classify(value, field_name)
            if existing.column_type.can_hold(needed):
                return existing.column_type

            if self._widen_policy == "reject":
                raise TypeConflictError(
                    f"{table}.{existing.name} is {existing.column_type.value}, "
                    f"value needs {needed.value}",
                    table=table,
                    column=existing.name,
                    details={"stored_type": existing.column_type.value, "incoming_type": needed.value},
                )

            decision = ColumnDecision(
                field_name=field_name,
                column_name=existing.name,
                column_type=existing.column_type.join(needed),
                reason=f"widened from {existing.column_type.value} for a {value.tag.value} value"
            )
            return self._widen_column(table, existing, decision, value, result)

    def _ensure_relation(self, table: str, result: ReconcileResult) -> Dict[str, _Column]:
        cached = self._load(table)
        if cached:
            return cached

        self._sink.create_table(table, self.SURROGATE_KEY_COLUMN, self.NATURAL_KEY_COLUMN)
        logger.info(f"Created table {table} ({self.SURROGATE_KEY_COLUMN}, {self.NATURAL_KEY_COLUMN} unique)")
        result.created = True
        return self._refresh(table)

    def _add_column(self, table: str, decision: ColumnDecision, result: ReconcileResult) -> Optional[ColumnType]:
        try:
            self._sink.add_column(table, decision.column_name, decision.column_type)
        except SchemaEvolutionError as e:
            # Another writer may have added it between our read and our DDL
            existing = self._refresh(table).get(decision.column_name.lower())
            if existing is not None:
                logger.info(f"Column {decision.column_name} already present in {table}")
                return existing.column_type
            return self._fail(table, decision, e, result)

        logger.info(
            f"Added column: {decision.column_name} {decision.column_type.sql_type} "
            f"to {table} ({decision.reason})"
        )
        result.added.append(decision)
        return self._refresh(table)[decision.column_name.lower()].column_type

    def _widen_column(
        self,
        table: str,
        existing: _Column,
        decision: ColumnDecision,
        value: TaggedValue,
        result: ReconcileResult
    ) -> ColumnType:
        try:
            self._sink.modify_column(table, existing.name, decision.column_type)
        except SchemaEvolutionError as e:
            logger.warning(f"Schema evolution failed for {table}.{existing.name}: {e.message}")
            self._frozen.setdefault(table, set()).add(existing.name.lower())
            result.failures.append(e)
            return self._fit_frozen(table, existing, value)

        logger.info(
            f"Widened column: {existing.name} in {table} "
            f"{existing.column_type.sql_type} -> {decision.column_type.sql_type}"
        )
        result.widened.append(decision)
        return self._refresh(table)[existing.name.lower()].column_type

    def _fit_frozen(self, table: str, existing: _Column, value: TaggedValue) -> ColumnType:
        # The column keeps its type until the next cycle
        if not value.is_informative or existing.column_type.can_hold(self._classifier.classify(value)):
            return existing.column_type
        raise SchemaEvolutionError(
            f"{table}.{existing.name} stays {existing.column_type.value} this cycle, "
            f"a {value.tag.value} value does not fit",
            table=table,
            column=existing.name,
            details={"stored_type": existing.column_type.value, "incoming_tag": value.tag.value},
        )

    def _fail(
        self,
        table: str,
        decision: ColumnDecision,
        error: SchemaEvolutionError,
        result: ReconcileResult
    ) -> None:
        logger.warning(f"Schema evolution failed for {table}.{decision.column_name}: {error.message}")
        self._unavailable.setdefault(table, set()).add(decision.column_name.lower())
        result.failures.append(error)
        return None

    def _load(self, table: str) -> Dict[str, _Column]:
        if table not in self._cache:
            self._refresh(table)
        return self._cache[table]

    def _refresh(self, table: str) -> Dict[str, _Column]:
        if self._sink.table_exists(table):
            raw = self._sink.get_current_columns(table)
        else:
            raw = {}
        self._cache[table] = {
            name.lower(): _Column(name=name, column_type=ColumnType.from_sql_type(data_type))
            for name, data_type in raw.items()
        }
        return self._cache[table]

    def _lock_for(self, table: str) -> threading.RLock:
        with self._locks_guard:
            if table not in self._locks:
                self._locks[table] = threading.RLock()
            return self._locks[table]
