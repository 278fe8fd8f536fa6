# ==============================================
# TypeDetector
# ==============================================
#
# PURPOSE:
#   Tags every raw value read from MongoDB exactly once, at read
#   time. Everything downstream (classification, normalization)
#   works on the tag, never on the raw Python type.
#
# TAGS:
# -----
# - NULL       → None, and numbers SQL cannot represent (NaN, ±inf)
# - BOOL       → bool (checked before int)
# - INT        → integral numbers inside the signed 64-bit range,
#                including integral floats and Decimal128
# - FLOAT      → everything else numeric; the value stays a float,
#                Decimal or int so no precision is lost
# - TEXT       → strings, compact JSON for dicts/lists, str() for
#                ObjectId and other BSON types
# - TIMESTAMP  → datetime, normalized to UTC
#
# CLASS: TypeDetector
# -------------------
#   Stateless, classmethods only.
#
#   - tag(value) -> TaggedValue
#   - tag_document(raw) -> dict[str, TaggedValue]
#   - to_iso8601(value) -> str
#
# ==============================================

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping

from bson.decimal128 import Decimal128


class ValueTag(Enum):
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    TEXT = "text"
    TIMESTAMP = "timestamp"


@dataclass(frozen=True)
class TaggedValue:
    tag: ValueTag
    value: Any

    @property
    def is_informative(self) -> bool:
        """NULL and empty strings carry no type information."""
        if self.tag is ValueTag.NULL:
            return False
        if self.tag is ValueTag.TEXT and self.value == "":
            return False
        return True


NULL = TaggedValue(ValueTag.NULL, None)


class TypeDetector:

    # Signed range of a BSON int64 and of a MySQL BIGINT column
    INT64_MIN = -(2 ** 63)
    INT64_MAX = 2 ** 63 - 1

    @classmethod
    def tag(cls, value: Any) -> TaggedValue:
        if value is None:
            return NULL

        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return TaggedValue(ValueTag.BOOL, value)

        if isinstance(value, int):
            if cls.INT64_MIN <= value <= cls.INT64_MAX:
                return TaggedValue(ValueTag.INT, int(value))
            return TaggedValue(ValueTag.FLOAT, int(value))

        if isinstance(value, Decimal128):
            value = value.to_decimal()

        if isinstance(value, (float, Decimal)):
            return cls._tag_number(value)

        if isinstance(value, datetime):
            return TaggedValue(ValueTag.TIMESTAMP, cls._as_utc(value))

        if isinstance(value, str):
            return TaggedValue(ValueTag.TEXT, value)

        if isinstance(value, (dict, list)):
            return TaggedValue(ValueTag.TEXT, json.dumps(value, default=str, separators=(",", ":")))

        # ObjectId, UUID, Binary, ... fall back to their string form
        return TaggedValue(ValueTag.TEXT, str(value))

    @classmethod
    def tag_document(cls, raw: Mapping[str, Any]) -> Dict[str, TaggedValue]:
        return {key: cls.tag(value) for key, value in raw.items()}

    @classmethod
    def to_iso8601(cls, value: datetime) -> str:
        """Canonical form: UTC, millisecond precision, Z suffix."""
        return cls._as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")

    @classmethod
    def _tag_number(cls, value: Any) -> TaggedValue:
        if isinstance(value, Decimal):
            if not value.is_finite():
                return NULL
            integral = value == value.to_integral_value()
        else:
            if not math.isfinite(value):
                return NULL
            integral = value.is_integer()

        if integral and cls.INT64_MIN <= value <= cls.INT64_MAX:
            return TaggedValue(ValueTag.INT, int(value))
        return TaggedValue(ValueTag.FLOAT, value)

    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # pymongo hands back naive datetimes that are already UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
