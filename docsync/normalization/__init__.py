# ==============================================
# NORMALIZATION
# ==============================================
#
# This package turns raw source documents into values the
# sink can store.
#
# Modules:
# --------
# - type_detector.py       → Tag every value once when it is read
#                            (NULL, BOOL, INT, FLOAT, TEXT, TIMESTAMP)
# - document_translator.py → Document → ordered (column, value) row
#
# ==============================================

from .type_detector import TypeDetector, TaggedValue, ValueTag
from .document_translator import DocumentTranslator

__all__ = ["TypeDetector", "TaggedValue", "ValueTag", "DocumentTranslator"]
