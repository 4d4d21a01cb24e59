"""Retention sweep: archives documents older than a cutoff, then deletes them.

A sweep pages through the store by timestamp (oldest first), writes each
document back out as an access log line into a gzip file named after the
cutoff date, renames the file into place and only then deletes everything
older than the cutoff from the store.

Paging keeps a cursor (inclusive lower bound) and the ids of the previous
page. Because the cursor is inclusive, consecutive pages overlap on the
boundary second; ids already written in the previous page are skipped.
When a full page ends on the same second as the previous one (at least one
page worth of documents share that second), the cursor is forced one second
forward. Documents in that second that did not fit in the page are not
archived, and the final delete removes them.

A stored document that cannot be rebuilt into an event is left out of the
archive, and the sweep then skips the delete so it stays in the store.

Search and delete failures are retried after a fixed delay, forever unless a
maximum number of attempts is configured.
"""

import glob
import gzip
import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from logship.codec import serialize_event
from logship.errors import StoreError, SweepAbortedError
from logship.metrics import PipelineMetrics
from logship.models import event_from_document
from logship.store import Document, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500
DEFAULT_RETRY_DELAY = 6.0
ARCHIVE_SUFFIX = ".log.gz"
TEMP_PREFIX = ".sweep-"
TEMP_SUFFIX = ".tmp"


class SweepGuard:
    """Process-wide "sweep in progress" flag.

    ``try_acquire`` is a non-blocking check-and-set; ``release`` may be
    called from a different thread than the one that acquired.
    """

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self):
        self._lock.release()

    @property
    def active(self) -> bool:
        return self._lock.locked()


@dataclass
class ArchiveRun:
    cutoff: int
    cursor: int = 0
    previous_ids: set[str] = field(default_factory=set)
    previous_max: int | None = None
    count: int = 0
    unreadable: int = 0
    pages: int = 0


@dataclass(frozen=True)
class SweepResult:
    cutoff: int
    archived: int
    pages: int
    deleted: int = 0
    path: str | None = None
    unreadable: int = 0


def _timestamp_of(source: dict) -> int | None:
    try:
        return int(source["timestamp"])
    except (KeyError, TypeError, ValueError):
        return None


class RetentionSweeper:
    def __init__(
        self,
        store: DocumentStore,
        index: str,
        archive_dir: str,
        archive_prefix: str = "access",
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_attempts: int = 0,
        sleep: Callable[[float], None] = time.sleep,
        metrics: PipelineMetrics | None = None,
    ):
        self._store = store
        self._index = index
        self._archive_dir = archive_dir
        self._archive_prefix = archive_prefix
        self._page_size = page_size
        self._retry_delay = retry_delay
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._metrics = metrics

    def archive_path(self, cutoff: int) -> str:
        """Path for the archive of *cutoff*, not clobbering an existing file."""
        day = datetime.fromtimestamp(cutoff).strftime("%Y-%m-%d")
        stem = os.path.join(self._archive_dir, f"{self._archive_prefix}-{day}")
        path = stem + ARCHIVE_SUFFIX
        n = 0
        while os.path.exists(path):
            n += 1
            path = f"{stem}.{n}{ARCHIVE_SUFFIX}"
        return path

    def run(self, cutoff: int) -> SweepResult:
        """Archive then delete every document with timestamp < *cutoff*.

        Raises SweepAbortedError only when ``max_attempts`` is set and a store
        operation keeps failing; the partial archive is removed in that case.
        If any document could not be turned back into a log line, the archive
        is kept but nothing is deleted.
        """
        logger.info("Retention sweep of %s started, cutoff=%d", self._index, cutoff)
        if self._metrics:
            self._metrics.record_sweep_started()

        os.makedirs(self._archive_dir, exist_ok=True)
        self._remove_stale_temp_files()
        run = ArchiveRun(cutoff=cutoff)

        fd, tmp = tempfile.mkstemp(dir=self._archive_dir, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX)
        try:
            with os.fdopen(fd, "wb") as raw, gzip.open(raw, "wt", compresslevel=9, encoding="utf-8") as out:
                self._export(run, out)
        except Exception:
            os.unlink(tmp)
            raise

        path = None
        if run.count == 0:
            os.unlink(tmp)
        else:
            path = self.archive_path(cutoff)
            os.replace(tmp, path)
            logger.info("Archived %d document(s) in %d page(s) to %s", run.count, run.pages, path)

        if run.unreadable:
            logger.error(
                "%d document(s) older than %d could not be archived; nothing deleted from %s",
                run.unreadable, cutoff, self._index,
            )
            return self._finish(run, path=path)
        if run.count == 0:
            logger.info("Retention sweep of %s found nothing to archive", self._index)
            return self._finish(run)

        deleted = self._retry("delete", lambda: self._store.delete_before(self._index, cutoff))
        logger.info("Deleted %d document(s) older than %d from %s", deleted, cutoff, self._index)
        return self._finish(run, deleted=deleted, path=path)

    def _finish(self, run: ArchiveRun, deleted: int = 0, path: str | None = None) -> SweepResult:
        if self._metrics:
            self._metrics.record_sweep_completed(run.count)
        return SweepResult(
            cutoff=run.cutoff,
            archived=run.count,
            pages=run.pages,
            deleted=deleted,
            path=path,
            unreadable=run.unreadable,
        )

    def _remove_stale_temp_files(self):
        # left behind by a sweep that was killed mid-export
        pattern = os.path.join(self._archive_dir, f"{TEMP_PREFIX}*{TEMP_SUFFIX}")
        for stale in glob.glob(pattern):
            logger.warning("Removing unfinished archive %s", stale)
            os.unlink(stale)

    def _export(self, run: ArchiveRun, out) -> None:
        while True:
            hits = self._retry(
                "search",
                lambda: self._store.search_range(self._index, run.cursor, run.cutoff, self._page_size),
            )
            run.pages += 1
            self._write_page(run, hits, out)
            if len(hits) < self._page_size:
                return

    def _write_page(self, run: ArchiveRun, hits: list[Document], out) -> None:
        page_ids: set[str] = set()
        page_max = run.cursor

        for doc_id, source in hits:
            page_ids.add(doc_id)
            ts = _timestamp_of(source)
            if ts is not None:
                page_max = max(page_max, ts)
            if doc_id in run.previous_ids:
                continue
            try:
                event = event_from_document(source)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Document %s cannot be archived, skipping: %s", doc_id, exc)
                run.unreadable += 1
                continue
            out.write(serialize_event(event) + "\n")
            run.count += 1

        full = len(hits) >= self._page_size
        if full and page_max == run.previous_max:
            run.cursor += 1
            logger.warning(
                "At least %d document(s) share timestamp %d; moving past it",
                self._page_size, page_max,
            )
        else:
            run.cursor = page_max
        run.previous_max = page_max
        run.previous_ids = page_ids

    def _retry(self, operation: str, fn):
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except StoreError as exc:
                if self._max_attempts and attempt >= self._max_attempts:
                    raise SweepAbortedError(
                        f"sweep {operation} failed {attempt} time(s), giving up"
                    ) from exc
                logger.warning(
                    "Sweep %s failed (attempt %d), retrying in %.1fs: %s",
                    operation, attempt, self._retry_delay, exc,
                )
                self._sleep(self._retry_delay)
