# ==============================================
# TypeClassifier
# ==============================================
#
# PURPOSE:
#   Maps a tagged value (or a list of samples for one field) onto
#   a ColumnType of the lattice. This is the only place that decides
#   which column type a new field gets and whether an incoming
#   value still fits its existing column.
#
# CLASS: TypeClassifier
# ---------------------
#   Stateless: tagged values in, ColumnType out.
#
#   Methods:
#   --------
#   - classify(value: TaggedValue, field_name: str = None) -> ColumnType
#       Applies rules in order:
#
#       RULE 0: FIELD NAMED "id" → TEXT
#         Keeps a source "id" away from integer surrogate-key semantics.
#
#       RULE 1: BOOL → BOOLEAN
#
#       RULE 2: INT inside [INT_MIN, INT_MAX] → INTEGER
#         Bounds are the MySQL INT column range.
#
#       RULE 3: INT outside that range → BIGINT
#
#       RULE 4: FLOAT → NUMERIC
#         Unless its magnitude needs more than the 35 integer digits
#         of DECIMAL(65,30); then TEXT.
#
#       RULE 5: TIMESTAMP → TEXT
#         Stored as canonical ISO-8601 so re-inference stays stable.
#
#       RULE 6: EVERYTHING ELSE → TEXT
#         Includes NULL / empty string when no better sample exists.
#
#   - representative(samples: list[TaggedValue]) -> TaggedValue
#       First informative sample (skips NULL and "").
#
#   - classify_field(field_name, samples, column_name=None) -> ColumnDecision
#       classify(representative(samples)) plus a reason for the logs.
#
# ==============================================

from typing import Iterable, Optional

from docsync.analysis.decision import ColumnDecision, ColumnType
from docsync.normalization.type_detector import NULL, TaggedValue, ValueTag


class TypeClassifier:
    """
    Turns value tags into column types.

    The classifier never looks at raw Python types; the tag assigned by
    TypeDetector when the document was read is the single source of truth.
    """

    INT_MIN = -(2 ** 31)
    INT_MAX = 2 ** 31 - 1

    # DECIMAL(65,30) keeps 35 digits left of the point
    NUMERIC_LIMIT = 10 ** 35

    # Source fields always stored as TEXT
    TEXT_ONLY_FIELDS = {"id"}

    def classify(self, value: TaggedValue, field_name: Optional[str] = None) -> ColumnType:
        """
        Classify a single tagged value.

        Args:
            value: Value tagged at read time
            field_name: Source field name, needed for the "id" rule

        Returns:
            ColumnType for a column able to hold the value
        """
        if field_name in self.TEXT_ONLY_FIELDS:
            return ColumnType.TEXT

        if value.tag is ValueTag.BOOL:
            return ColumnType.BOOLEAN

        if value.tag is ValueTag.INT:
            if self.INT_MIN <= value.value <= self.INT_MAX:
                return ColumnType.INTEGER
            return ColumnType.BIGINT

        if value.tag is ValueTag.FLOAT:
            if abs(value.value) < self.NUMERIC_LIMIT:
                return ColumnType.NUMERIC
            return ColumnType.TEXT

        return ColumnType.TEXT

    def representative(self, samples: Iterable[TaggedValue]) -> TaggedValue:
        """Pick the first sample that carries type information."""
        for sample in samples:
            if sample.is_informative:
                return sample
        return NULL

    def classify_field(
        self,
        field_name: str,
        samples: Iterable[TaggedValue],
        column_name: Optional[str] = None
    ) -> ColumnDecision:
        """
        Classify a field from its observed samples.

        Args:
            field_name: Source field name
            samples: Observed tagged values, in observation order
            column_name: Column the field maps to (defaults to field_name)

        Returns:
            ColumnDecision with the inferred type and why
        """
        sample = self.representative(samples)
        column_type = self.classify(sample, field_name)

        if field_name in self.TEXT_ONLY_FIELDS:
            reason = f"'{field_name}' is always stored as text"
        elif not sample.is_informative:
            reason = "no informative sample, defaulting to text"
        else:
            reason = f"sample tagged {sample.tag.value}"

        return ColumnDecision(
            field_name=field_name,
            column_name=column_name or field_name,
            column_type=column_type,
            reason=reason
        )
