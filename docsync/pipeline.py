"""
==============================================
Sync Pipeline / Scheduler
==============================================

Drives periodic full rescans of the source into the sink.

    IDLE → DISCOVERING → PER_COLLECTION_SYNC → SLEEPING → DISCOVERING → ...

USAGE EXAMPLES:

1. Run until SIGINT / SIGTERM:
    from docsync.pipeline import SyncPipeline

    with SyncPipeline() as pipeline:
        pipeline.run_forever()

2. One cycle, inspect the report:
    with SyncPipeline() as pipeline:
        report = pipeline.run_once()
        print(report.summary())

3. Bounded run:
    with SyncPipeline() as pipeline:
        pipeline.run_forever(max_cycles=3)
"""

import signal
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from loguru import logger

from docsync.collection_sync import CollectionSync
from docsync.config import AppConfig, get_config
from docsync.normalization.document_translator import DocumentTranslator
from docsync.report import CycleReport
from docsync.storage.collection_enumerator import CollectionEnumerator
from docsync.storage.mongo_client import MongoClient
from docsync.storage.mysql_client import MySQLClient
from docsync.storage.schema_reconciler import SchemaReconciler
from docsync.storage.upsert_writer import UpsertWriter


class SchedulerState(Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    PER_COLLECTION_SYNC = "per_collection_sync"
    SLEEPING = "sleeping"


class SyncScheduler:
    """
    Timer-driven loop of full rescans.

    Only one cycle runs at a time: a cycle that overruns the interval makes
    the missed ticks coalesce into a single immediate cycle, and run_cycle()
    refuses to start while another cycle holds the cycle lock.
    """

    def __init__(
        self,
        enumerator: CollectionEnumerator,
        collection_sync: CollectionSync,
        reconciler: SchemaReconciler,
        interval_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        on_cycle: Optional[Callable[[CycleReport], None]] = None
    ):
        self._enumerator = enumerator
        self._collection_sync = collection_sync
        self._reconciler = reconciler
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._on_cycle = on_cycle

        self._state = SchedulerState.IDLE
        self._stop = threading.Event()
        self._cycle_lock = threading.Lock()
        self._cycles = 0
        self.skipped_ticks = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to halt once the current document is written."""
        if not self._stop.is_set():
            logger.info("Stop requested")
        self._stop.set()

    def run_cycle(self) -> Optional[CycleReport]:
        """
        One full rescan of every collection.

        Returns:
            CycleReport, or None when another cycle is still running

        Raises:
            StoreConnectionError: the source or sink is unreachable
        """
        if not self._cycle_lock.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.warning("Previous sync cycle still running, skipping this tick")
            return None

        try:
            self._cycles += 1
            report = CycleReport(cycle=self._cycles)
            logger.info(f"🔄 Checking for changes (cycle {self._cycles})...")

            self._state = SchedulerState.DISCOVERING
            collections = self._enumerator.list_collections()
            self._reconciler.begin_cycle()

            self._state = SchedulerState.PER_COLLECTION_SYNC
            for collection in sorted(collections):
                if self.stopping:
                    break
                report.collections.append(
                    self._collection_sync.sync(collection, should_stop=self._stop.is_set)
                )

            report.interrupted = self.stopping
            report.finish()
            self._log_report(report)
            if self._on_cycle is not None:
                self._on_cycle(report)
            return report
        finally:
            self._state = SchedulerState.IDLE
            self._cycle_lock.release()

    def run_forever(self, max_cycles: Optional[int] = None, handle_signals: bool = True) -> int:
        """
        Loop until stop() (or SIGINT / SIGTERM), or until `max_cycles` ran.

        Args:
            max_cycles: Upper bound on cycles, None = no bound
            handle_signals: Install SIGINT/SIGTERM handlers calling stop()

        Returns:
            Number of cycles run
        """
        restore = self._install_signal_handlers() if handle_signals else None
        ran = 0
        try:
            logger.info(f"🚀 Starting sync loop (interval {self.interval_seconds}s)")
            next_tick = self._clock()
            while not self.stopping:
                self.run_cycle()
                ran += 1
                if max_cycles is not None and ran >= max_cycles:
                    break

                next_tick += self.interval_seconds
                now = self._clock()
                if now >= next_tick:
                    missed = int((now - next_tick) // self.interval_seconds) + 1
                    self.skipped_ticks += missed
                    logger.warning(
                        f"Cycle overran the {self.interval_seconds}s interval, "
                        f"coalescing {missed} missed tick(s)"
                    )
                    next_tick = now

                self._state = SchedulerState.SLEEPING
                self._stop.wait(max(0.0, next_tick - now))
                self._state = SchedulerState.IDLE
        finally:
            if restore is not None:
                restore()
        logger.info(f"Sync loop stopped after {ran} cycle(s)")
        return ran

    def _log_report(self, report: CycleReport) -> None:
        for collection in report.collections:
            if collection.aborted:
                logger.error(f"✗ {collection.collection}: aborted ({collection.aborted})")
            for failure in collection.schema_failures:
                logger.warning(f"✗ {collection.table}.{failure.column}: {failure.message}")
        if report.ok:
            logger.success(f"✅ Sync complete: {report.summary()}")
        else:
            logger.warning(f"⚠ Sync complete with errors: {report.summary()}")

    def _install_signal_handlers(self):
        if threading.current_thread() is not threading.main_thread():
            return None

        previous = {}

        def _handler(signum, frame):
            logger.warning(f"Received signal {signum}, finishing current document")
            self.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            previous[sig] = signal.signal(sig, _handler)

        def _restore():
            for sig, handler in previous.items():
                signal.signal(sig, handler)

        return _restore


class SyncPipeline:
    """
    High-level wrapper that builds every component from AppConfig.

    Owns the MongoDB and MySQL connections; use it as a context manager.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        mongo_client: Optional[MongoClient] = None,
        mysql_client: Optional[MySQLClient] = None
    ):
        self._config = config or get_config()
        sync = self._config.sync

        self.mongo = mongo_client or MongoClient(
            host=self._config.mongo.host,
            port=self._config.mongo.port,
            database=self._config.mongo.database,
            user=self._config.mongo.user,
            password=self._config.mongo.password,
            uri=self._config.mongo.uri,
            retry=self._config.retry
        )
        self.mysql = mysql_client or MySQLClient(
            host=self._config.mysql.host,
            port=self._config.mysql.port,
            user=self._config.mysql.user,
            password=self._config.mysql.password,
            database=self._config.mysql.database,
            retry=self._config.retry
        )

        self.reconciler = SchemaReconciler(
            self.mysql,
            widen_policy=sync.widen_policy,
            id_field=sync.id_field
        )
        self.enumerator = CollectionEnumerator(self.mongo, allow_list=sync.collections)
        self.collection_sync = CollectionSync(
            self.mongo,
            self.reconciler,
            translator=DocumentTranslator(self.reconciler, id_field=sync.id_field),
            writer=UpsertWriter(self.mysql, natural_key_column=SchemaReconciler.NATURAL_KEY_COLUMN),
            id_field=sync.id_field
        )
        self.scheduler = SyncScheduler(
            self.enumerator,
            self.collection_sync,
            self.reconciler,
            interval_seconds=sync.interval_seconds
        )

    def connect(self) -> None:
        """Open both links. Raises StoreConnectionError (fatal)."""
        self.mongo.connect()
        try:
            self.mysql.connect()
        except Exception:
            self.mongo.disconnect()
            raise

    def close(self) -> None:
        self.mongo.disconnect()
        self.mysql.disconnect()

    def list_collections(self) -> List[str]:
        return sorted(self.enumerator.list_collections())

    def run_once(self) -> Optional[CycleReport]:
        return self.scheduler.run_cycle()

    def run_forever(self, max_cycles: Optional[int] = None) -> int:
        return self.scheduler.run_forever(max_cycles=max_cycles)

    def stop(self) -> None:
        self.scheduler.stop()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
