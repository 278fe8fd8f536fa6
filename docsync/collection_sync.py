# ==============================================
# CollectionSync - one collection, one full rescan
# ==============================================
#
# PURPOSE:
#   Ties the components together for a single collection:
#
#   ┌──────────────────────────────────────────────────────────┐
#   │                     CollectionSync                       │
#   │                                                          │
#   │   MongoClient.find_all(collection)                       │
#   │        │ tagged documents                                │
#   │        ▼                                                 │
#   │   build_sample() ──► SchemaReconciler.reconcile()        │
#   │        │                                                 │
#   │        ▼  per document                                   │
#   │   DocumentTranslator.translate()  (JIT ensure_field)     │
#   │        │ row                                             │
#   │        ▼                                                 │
#   │   UpsertWriter.write()                                   │
#   │        │                                                 │
#   │        ▼                                                 │
#   │   CollectionReport                                       │
#   └──────────────────────────────────────────────────────────┘
#
# ERROR HANDLING:
#   - StoreConnectionError propagates (fatal for the run)
#   - relation creation rejected → collection aborted, recorded
#   - column DDL rejected → recorded, field unavailable this cycle
#   - WriteError / TypeConflictError → that document is recorded
#     as failed, the rest of the collection continues
#
# ==============================================

from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger

from docsync.errors import SchemaEvolutionError, WriteError
from docsync.normalization.document_translator import DocumentTranslator
from docsync.normalization.type_detector import TaggedValue
from docsync.report import CollectionReport, DocumentFailure, SchemaFailure
from docsync.storage.schema_reconciler import ReconcileResult, SchemaReconciler
from docsync.storage.upsert_writer import UpsertWriter


def build_sample(documents: List[Mapping[str, TaggedValue]]) -> Dict[str, TaggedValue]:
    """
    Representative document for a collection.

    For every field seen in any document, keep the first informative value
    (NULL and "" are skipped). Fields that are never informative keep their
    first value. Field order follows first appearance.
    """
    sample: Dict[str, TaggedValue] = {}
    for document in documents:
        for field_name, value in document.items():
            current = sample.get(field_name)
            if current is None or (not current.is_informative and value.is_informative):
                sample[field_name] = value
    return sample


class CollectionSync:
    """
    Runs Reconcile → Translate → Write over every document of a collection.
    """

    def __init__(
        self,
        source,
        reconciler: SchemaReconciler,
        translator: Optional[DocumentTranslator] = None,
        writer: Optional[UpsertWriter] = None,
        id_field: str = "_id"
    ):
        """
        Args:
            source: Object exposing find_all(collection) (MongoClient)
            reconciler: SchemaReconciler bound to the sink
            translator: Defaults to a DocumentTranslator over `reconciler`
            writer: UpsertWriter bound to the sink (required for writes)
            id_field: Source field holding the stable identifier
        """
        self._source = source
        self._reconciler = reconciler
        self._translator = translator or DocumentTranslator(reconciler, id_field=id_field)
        self._writer = writer
        self._id_field = id_field

    def sync(self, collection: str, should_stop: Callable[[], bool] = lambda: False) -> CollectionReport:
        """
        Full rescan of one collection.

        Args:
            collection: Source collection name
            should_stop: Checked between documents; the document being
                written when it flips still completes

        Returns:
            CollectionReport for this collection
        """
        table = self._reconciler.table_name(collection)
        report = CollectionReport(collection=collection, table=table)

        documents = self._source.find_all(collection)
        report.documents_seen = len(documents)
        if not documents:
            logger.info(f"Collection '{collection}' is empty, skipping")
            return report

        try:
            result = self._reconciler.reconcile(collection, build_sample(documents))
        except SchemaEvolutionError as e:
            report.aborted = e.message
            logger.error(f"Cannot create table {table} for '{collection}': {e.message}")
            return report
        self._record_schema(report, result)

        for document in documents:
            if should_stop():
                logger.warning(f"Stop requested, leaving '{collection}' after {report.rows_written} rows")
                break
            self._sync_document(table, document, report)

        logger.info(
            f"Data synced: {collection} -> {table} "
            f"({report.rows_written}/{report.documents_seen} records)"
        )
        return report

    def _sync_document(self, table: str, document: Mapping[str, TaggedValue], report: CollectionReport) -> None:
        changes = ReconcileResult(table=table)
        natural_key = self._translator.natural_key(document.get(self._id_field))
        try:
            row = self._translator.translate(table, document, changes)
            self._writer.write(table, row, self._reconciler.columns(table))
            report.rows_written += 1
        except (WriteError, SchemaEvolutionError) as e:
            report.document_failures.append(
                DocumentFailure(natural_key=natural_key, error_type=type(e).__name__, message=e.message)
            )
            logger.warning(f"✗ {table} {self._reconciler.NATURAL_KEY_COLUMN}={natural_key}: {e.message}")
        finally:
            self._record_schema(report, changes)

    def _record_schema(self, report: CollectionReport, result: ReconcileResult) -> None:
        report.table_created = report.table_created or result.created
        report.columns_added.extend(d.column_name for d in result.added)
        report.columns_widened.extend(d.column_name for d in result.widened)
        report.schema_failures.extend(
            SchemaFailure(column=f.column, message=f.message) for f in result.failures
        )
