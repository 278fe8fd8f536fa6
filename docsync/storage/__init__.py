# ==============================================
# STORAGE (MongoDB source + MySQL sink)
# ==============================================
#
# This package handles all database operations:
# reading the source, evolving the sink schema, writing rows.
#
# Modules:
# --------
# - mongo_client.py          → MongoDB connection and reads
# - mysql_client.py          → MySQL connection, DDL and upserts
# - collection_enumerator.py → Which collections a cycle visits
# - schema_reconciler.py     → Additive schema evolution
# - upsert_writer.py         → Full-row insert-or-replace
#
# ==============================================

from .mysql_client import MySQLClient
from .mongo_client import MongoClient
from .collection_enumerator import CollectionEnumerator
from .schema_reconciler import SchemaReconciler, ReconcileResult
from .upsert_writer import UpsertWriter

__all__ = [
    "MySQLClient",
    "MongoClient",
    "CollectionEnumerator",
    "SchemaReconciler",
    "ReconcileResult",
    "UpsertWriter"
]
