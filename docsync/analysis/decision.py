# ==============================================
# Decision (Data Classes)
# ==============================================
#
# PURPOSE:
#   Data classes that represent the OUTPUT of classification:
#   the column type lattice and the decision taken for one field.
#
# WHY THIS FILE EXISTS:
#   Separating data classes from logic keeps the classifier clean.
#   These classes are also used by Storage (SchemaReconciler,
#   MySQLClient) to know which DDL to issue, and by the
#   DocumentTranslator to normalize values for a column.
#
# ENUMS:
# ------
# - ColumnType(Enum): BOOLEAN < INTEGER < BIGINT < NUMERIC < TEXT
#     Totally ordered lattice. Widening always moves right.
#
#     Methods:
#     --------
#     - sql_type -> str                    → DDL type for MySQL
#     - join(other) -> ColumnType          → smallest type holding both
#     - can_hold(other) -> bool            → self >= other in the lattice
#     - from_sql_type(data_type) -> ColumnType (classmethod)
#         Map INFORMATION_SCHEMA.DATA_TYPE back onto the lattice.
#
# CLASSES:
# --------
# - ColumnDecision (dataclass)
#     field_name: str          → Source field name
#     column_name: str         → Column it is stored in
#     column_type: ColumnType  → Inferred type
#     reason: str              → Human-readable explanation
#
# ==============================================

from enum import Enum
from dataclasses import dataclass
from typing import Any, Dict


class ColumnType(Enum):
    """
    Column type categories, declared in lattice order.

    - BOOLEAN: true/false
    - INTEGER: integral values inside the INT column range
    - BIGINT:  integral values outside the INT column range
    - NUMERIC: fractional values and integers beyond BIGINT, stored exactly
    - TEXT:    everything else, including canonical ISO-8601 timestamps
    """
    BOOLEAN = "boolean"
    INTEGER = "integer"
    BIGINT = "bigint"
    NUMERIC = "numeric"
    TEXT = "text"

    @property
    def rank(self) -> int:
        return _LATTICE.index(self)

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self]

    def join(self, other: "ColumnType") -> "ColumnType":
        return self if self.rank >= other.rank else other

    def can_hold(self, other: "ColumnType") -> bool:
        return self.rank >= other.rank

    @classmethod
    def from_sql_type(cls, data_type: str) -> "ColumnType":
        """
        Map a MySQL INFORMATION_SCHEMA.DATA_TYPE onto the lattice.

        Unknown types land on TEXT, which accepts every value.
        """
        return _SQL_TYPE_LOOKUP.get(str(data_type).strip().lower(), cls.TEXT)


_LATTICE = [
    ColumnType.BOOLEAN,
    ColumnType.INTEGER,
    ColumnType.BIGINT,
    ColumnType.NUMERIC,
    ColumnType.TEXT,
]

_SQL_TYPES = {
    ColumnType.BOOLEAN: "BOOLEAN",
    ColumnType.INTEGER: "INT",
    ColumnType.BIGINT: "BIGINT",
    ColumnType.NUMERIC: "DECIMAL(65,30)",
    ColumnType.TEXT: "TEXT",
}

# MySQL reports BOOLEAN columns as tinyint
_SQL_TYPE_LOOKUP = {
    "tinyint": ColumnType.BOOLEAN,
    "bit": ColumnType.BOOLEAN,
    "bool": ColumnType.BOOLEAN,
    "boolean": ColumnType.BOOLEAN,
    "smallint": ColumnType.INTEGER,
    "mediumint": ColumnType.INTEGER,
    "int": ColumnType.INTEGER,
    "integer": ColumnType.INTEGER,
    "bigint": ColumnType.BIGINT,
    "double": ColumnType.NUMERIC,
    "float": ColumnType.NUMERIC,
    "decimal": ColumnType.NUMERIC,
    "numeric": ColumnType.NUMERIC,
    "real": ColumnType.NUMERIC,
}


@dataclass
class ColumnDecision:
    """
    Represents the classification decision for a single field.

    This is what the TypeClassifier produces and what the
    SchemaReconciler turns into an ADD COLUMN / MODIFY COLUMN.
    """
    field_name: str
    column_name: str
    column_type: ColumnType
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and cycle reports."""
        return {
            "field_name": self.field_name,
            "column_name": self.column_name,
            "column_type": self.column_type.value,
            "reason": self.reason,
        }
