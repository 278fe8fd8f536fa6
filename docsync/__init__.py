# ==============================================
# docsync - MongoDB → MySQL schema-inferring sync
# ==============================================
#
# Package Structure:
#
# docsync/
# ├── analysis/         # Column type lattice + TypeClassifier
# ├── normalization/    # Value tagging + DocumentTranslator
# ├── storage/          # Mongo/MySQL clients, SchemaReconciler,
# │                     # UpsertWriter, CollectionEnumerator
# ├── collection_sync.py  # Reconcile → Translate → Write for one collection
# ├── pipeline.py       # SyncScheduler + SyncPipeline wiring
# ├── report.py         # Per-cycle error / progress report
# ├── retry.py          # Bounded retry at the I/O boundary
# ├── errors.py         # Exception hierarchy
# ├── config.py         # Configuration management
# └── cli.py            # Command line entry point
#
# ==============================================

__version__ = "0.1.0"
