"""Bulk indexer: dedups a batch by event id and ships it in one request.

Delivery is at-most-once: a failed bulk request is logged and the batch is
dropped, never retried.
"""

import logging
from dataclasses import dataclass

from logship.errors import StoreError
from logship.identity import event_id
from logship.models import LogEvent, event_to_document
from logship.store import Document, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_BULK_TIMEOUT = 25.0

# Per-document result markers that mean a new document was written
NEW_DOCUMENT_RESULTS = frozenset({"created"})


@dataclass(frozen=True)
class FlushOutcome:
    indexed: int = 0
    duplicates: int = 0
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def dedupe(batch: list[LogEvent]) -> tuple[list[Document], int]:
    """Build (id, document) pairs in batch order; the first event per id wins."""
    seen: set[str] = set()
    docs: list[Document] = []
    duplicates = 0
    for event in batch:
        doc_id = event_id(event)
        if doc_id in seen:
            duplicates += 1
            continue
        seen.add(doc_id)
        docs.append((doc_id, event_to_document(event)))
    return docs, duplicates


def flush_batch(
    store: DocumentStore,
    index: str,
    batch: list[LogEvent],
    timeout: float = DEFAULT_BULK_TIMEOUT,
) -> FlushOutcome:
    """Upsert *batch* into *index*. Never raises for store failures."""
    if not batch:
        return FlushOutcome()

    docs, duplicates = dedupe(batch)
    if duplicates:
        logger.debug("Dropped %d duplicate event(s) from batch", duplicates)

    try:
        markers = store.bulk_index(index, docs, timeout)
    except StoreError as exc:
        logger.warning("Bulk flush of %d event(s) to %s failed, batch dropped: %s", len(docs), index, exc)
        return FlushOutcome(duplicates=duplicates, error=exc)

    indexed = sum(1 for marker in markers if marker in NEW_DOCUMENT_RESULTS)
    if indexed == 0:
        logger.warning("Bulk flush of %d event(s) to %s created no new documents", len(docs), index)
    else:
        logger.info("Indexed %d/%d event(s) into %s", indexed, len(docs), index)
    return FlushOutcome(indexed=indexed, duplicates=duplicates)
