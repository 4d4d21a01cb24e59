"""Ingestion coordinator: the tail loop, batching and sweep triggering.

Everything on the ingestion side runs on the tail loop's thread: a slow bulk
request holds up the next line. A retention sweep runs on its own thread with
its own store handle; the SweepGuard is the only state the two share.
"""

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable

from logship.codec import parse_line
from logship.config import Config
from logship.errors import StoreError, SweepAbortedError
from logship.file_reader import FileTailer
from logship.indexer import FlushOutcome, flush_batch
from logship.metrics import PipelineMetrics
from logship.models import LogEvent, Rejected
from logship.store import DocumentStore
from logship.sweeper import RetentionSweeper, SweepGuard

logger = logging.getLogger(__name__)


class IngestionCoordinator:
    def __init__(
        self,
        config: Config,
        store: DocumentStore,
        index: str,
        store_factory: Callable[[], DocumentStore] | None = None,
        guard: SweepGuard | None = None,
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._store = store
        self._index = index
        self._store_factory = store_factory or (lambda: store)
        self._guard = guard or SweepGuard()
        self._metrics = metrics or PipelineMetrics()
        self._clock = clock
        self._sleep = sleep
        self._batch: list[LogEvent] = []
        self._last_cutoff: int | None = None
        self._sweep_thread: threading.Thread | None = None

    @property
    def batch(self) -> list[LogEvent]:
        return list(self._batch)

    @property
    def metrics(self) -> PipelineMetrics:
        return self._metrics

    @property
    def sweep_active(self) -> bool:
        return self._guard.active

    # ------------------------------------------------------------------
    # Tail loop
    # ------------------------------------------------------------------

    def run(self, path: str, shutdown_event: threading.Event):
        """Tail *path* until *shutdown_event* is set."""
        tailer = FileTailer(
            path,
            shutdown_event,
            callback=self.handle_line,
            poll_interval=self._config.poll_interval,
            from_start=self._config.from_start,
        )
        tailer.run()

    def handle_line(self, line: str):
        self._metrics.record_line()
        result = parse_line(line)
        if isinstance(result, Rejected):
            self._metrics.record_rejected(result.reason)
            logger.debug("Rejected line (%s): %s", result.reason, line)
            return

        self._batch.append(result)
        if len(self._batch) >= self._config.batch_size:
            self.maybe_trigger_sweep()
            self.flush()

    def flush(self) -> FlushOutcome:
        """Ship the current batch; the batch is cleared whatever the outcome."""
        batch, self._batch = self._batch, []
        outcome = flush_batch(self._store, self._index, batch, self._config.bulk_timeout)
        self._metrics.record_flush(outcome.indexed, outcome.duplicates, failed=not outcome.ok)
        return outcome

    def close(self):
        """Flush a partial batch left over at shutdown."""
        if self._batch:
            logger.info("Flushing %d buffered event(s) before exit", len(self._batch))
            self.flush()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def retention_cutoff(self) -> int:
        """Epoch seconds of local midnight, ``retention_days`` days ago."""
        day = self._clock().date() - timedelta(days=self._config.retention_days)
        return int(datetime.combine(day, datetime.min.time()).timestamp())

    def maybe_trigger_sweep(self) -> bool:
        """Start a background sweep if a new cutoff day has old documents.

        Skipped (not queued) while another sweep is running. Returns True if a
        sweep thread was started.
        """
        cutoff = self.retention_cutoff()
        if cutoff == self._last_cutoff:
            return False
        if self._guard.active:
            logger.debug("Sweep already running, skipping retention check")
            return False

        try:
            pending = self._store.count_before(self._index, cutoff)
        except StoreError as exc:
            logger.warning("Could not count documents older than %d: %s", cutoff, exc)
            return False

        if pending <= 0:
            self._last_cutoff = cutoff
            return False
        if not self._guard.try_acquire():
            return False

        self._last_cutoff = cutoff
        logger.info("%d document(s) older than %d, starting retention sweep", pending, cutoff)
        thread = threading.Thread(
            target=self._sweep, args=(cutoff,), name="retention-sweep", daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            self._guard.release()
            raise
        self._sweep_thread = thread
        return True

    def wait_for_sweep(self, timeout: float | None = None) -> bool:
        """Join the running sweep thread. Returns False if it is still running."""
        thread = self._sweep_thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def _sweep(self, cutoff: int):
        store = None
        try:
            store = self._store_factory()
            sweeper = RetentionSweeper(
                store,
                self._index,
                archive_dir=self._config.archive_dir,
                archive_prefix=self._config.archive_prefix,
                page_size=self._config.sweep_page_size,
                retry_delay=self._config.sweep_retry_delay,
                max_attempts=self._config.sweep_max_attempts,
                sleep=self._sleep,
                metrics=self._metrics,
            )
            sweeper.run(cutoff)
        except SweepAbortedError as exc:
            logger.error("Retention sweep aborted: %s", exc)
        except Exception:
            logger.exception("Retention sweep failed")
        finally:
            self._guard.release()
            if store is not None and store is not self._store:
                store.close()
