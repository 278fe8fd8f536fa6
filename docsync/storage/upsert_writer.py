# ==============================================
# UpsertWriter
# ==============================================
#
# PURPOSE:
#   Commits one translated row with insert-or-replace semantics,
#   keyed by the natural-key UNIQUE column.
#
# WHY THIS CLASS EXISTS:
#   A translated row only carries the fields present in the source
#   document. On conflict the whole row must be replaced, so every
#   other column the relation knows about is written as NULL.
#   Writing the same document twice therefore always yields the
#   same row.
#
# CLASS: UpsertWriter
# -------------------
#   Stateless apart from the sink reference.
#
#   Methods:
#   --------
#   - write(table, row, columns) -> None
#       Expand `row` to a full row over `columns`, then issue one
#       parameterized upsert. Each call commits independently.
#       Raises WriteError when the statement fails.
#
#   - full_row(row, columns) -> tuple[list[str], list]
#       The expansion step on its own.
#
# ==============================================

from typing import Any, Iterable, List, Tuple

from loguru import logger

from docsync.normalization.document_translator import Row


class UpsertWriter:
    """Full-row upserts over a sink exposing upsert_row()."""

    def __init__(self, sink, natural_key_column: str = "mongo_id"):
        self._sink = sink
        self.natural_key_column = natural_key_column

    def full_row(self, row: Row, columns: Iterable[str]) -> Tuple[List[str], List[Any]]:
        """
        Args:
            row: Translated (column, value) pairs, natural key first
            columns: Every data column currently in the relation

        Returns:
            (column names, values) covering the row plus NULL for the
            relation's columns the document does not carry
        """
        names: List[str] = []
        values: List[Any] = []
        seen = set()
        for column, value in row:
            names.append(column)
            values.append(value)
            seen.add(column.lower())

        for column in columns:
            if column.lower() not in seen:
                names.append(column)
                values.append(None)
                seen.add(column.lower())

        return names, values

    def write(self, table: str, row: Row, columns: Iterable[str]) -> None:
        names, values = self.full_row(row, columns)
        self._sink.upsert_row(table, names, values, self.natural_key_column)
        logger.debug(f"Upserted {self.natural_key_column}={values[0]!r} into {table}")
