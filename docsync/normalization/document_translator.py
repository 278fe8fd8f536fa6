# ==============================================
# DocumentTranslator
# ==============================================
#
# PURPOSE:
#   Turns one tagged source document into the ordered row the
#   UpsertWriter commits. Fields without a column are reconciled
#   just in time, one field at a time.
#
# CLASS: DocumentTranslator
# -------------------------
#   Constructor:
#   ------------
#   - __init__(reconciler, id_field="_id")
#
#   Methods:
#   --------
#   - translate(table, document, result=None) -> Row
#       Natural key first, then one pair per column. Fields whose
#       column names differ only in case share one column; the last
#       value in document order is kept.
#
#   - natural_key(identifier) -> str | None
#   - normalize(value, column_type) -> Any
#       NULL and "" become None; TEXT columns get canonical text;
#       integer columns get int; NUMERIC columns get the exact
#       int, Decimal or float that was read.
#
# ==============================================

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from docsync.analysis.decision import ColumnType
from docsync.errors import WriteError
from docsync.normalization.type_detector import TaggedValue, TypeDetector, ValueTag

if TYPE_CHECKING:
    from docsync.storage.schema_reconciler import ReconcileResult, SchemaReconciler


Row = List[Tuple[str, Any]]


class DocumentTranslator:
    """
    Turns one tagged source document into an ordered row for the sink.

    The row starts with (natural key column, identifier) followed by one
    (column, value) pair per remaining field. Fields the relation has not
    seen yet are reconciled inline before their pair is produced.
    """

    def __init__(self, reconciler: "SchemaReconciler", id_field: str = "_id"):
        self.reconciler = reconciler
        self.id_field = id_field

    def translate(
        self,
        table: str,
        document: Mapping[str, TaggedValue],
        result: Optional["ReconcileResult"] = None
    ) -> Row:
        """
        Args:
            table: Relation the row is written to
            document: Field -> tagged value, identifier included
            result: Accumulator for schema changes made along the way

        Returns:
            [(natural_key_column, identifier), (column, value), ...]

        Raises:
            WriteError: the document has no usable identifier
            TypeConflictError: a value does not fit and widening is disabled
            SchemaEvolutionError: a value does not fit a column whose widening
                was rejected earlier in the cycle
        """
        fields = dict(document)
        identifier = fields.pop(self.id_field, None)
        natural_key = self.natural_key(identifier)
        if natural_key is None:
            raise WriteError(
                f"Document in {table} has no '{self.id_field}' identifier",
                table=table,
            )

        # lower-cased column name -> (column, value); MySQL rejects a column listed twice
        pairs: Dict[str, Tuple[str, Any]] = {}
        for field_name, value in fields.items():
            column_type = self.reconciler.ensure_field(table, field_name, value, result)
            if column_type is None:
                # ADD COLUMN for this field was rejected earlier in the cycle
                continue
            column = self.reconciler.column_name(field_name)
            key = column.lower()
            if key in pairs:
                column = pairs[key][0]
                logger.debug(f"{table}: '{field_name}' shares column '{column}', keeping the last value")
            pairs[key] = (column, self.normalize(value, column_type))

        row: Row = [(self.reconciler.NATURAL_KEY_COLUMN, natural_key)]
        row.extend(pairs.values())
        return row

    def natural_key(self, identifier: Optional[TaggedValue]) -> Optional[str]:
        if identifier is None or not identifier.is_informative:
            return None
        return self._as_text(identifier)

    def normalize(self, value: TaggedValue, column_type: ColumnType) -> Any:
        """
        Normalize a tagged value for a column of `column_type`.

        NULL and "" always become None, whatever the column type.
        """
        if not value.is_informative:
            return None

        if column_type is ColumnType.TEXT:
            return self._as_text(value)

        if value.tag is ValueTag.BOOL:
            return value.value

        if value.tag in (ValueTag.INT, ValueTag.FLOAT):
            if column_type in (ColumnType.INTEGER, ColumnType.BIGINT, ColumnType.BOOLEAN):
                return int(value.value)
            return value.value

        return self._as_text(value)

    def _as_text(self, value: TaggedValue) -> str:
        if value.tag is ValueTag.BOOL:
            return "true" if value.value else "false"
        if value.tag is ValueTag.TIMESTAMP and isinstance(value.value, datetime):
            return TypeDetector.to_iso8601(value.value)
        return str(value.value)
