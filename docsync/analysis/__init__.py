# ==============================================
# ANALYSIS: COLUMN TYPE INFERENCE
# ==============================================
#
# Modules:
# --------
# - decision.py    → ColumnType lattice, ColumnDecision
# - classifier.py  → TypeClassifier (tagged value → ColumnType)
#
# ==============================================

from .decision import ColumnType, ColumnDecision
from .classifier import TypeClassifier

__all__ = ["ColumnType", "ColumnDecision", "TypeClassifier"]
