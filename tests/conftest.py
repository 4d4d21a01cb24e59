"""Shared fixtures: an in-memory DocumentStore and access log samples."""

import threading

import pytest

from logship.errors import StoreError
from logship.identity import event_id
from logship.models import LogEvent, event_to_document

SAMPLE_LINE = (
    '10.0.0.1 - - [01/Jan/2023:00:00:00 +0000] "-" "GET / HTTP/1.1" '
    '200 512 "-" "curl/7.0"'
)


def make_event(timestamp: int, ip: str = "10.0.0.1", **overrides) -> LogEvent:
    fields = {
        "primary_ip": ip,
        "request": "GET / HTTP/1.1",
        "status_code": 200,
        "size": 512,
        "timestamp": timestamp,
        "user_agent": "curl/7.0",
    }
    fields.update(overrides)
    return LogEvent(**fields)


class MemoryStore:
    """DocumentStore double holding one index in a dict.

    ``fail_next[operation] = n`` makes the next *n* calls of that operation
    raise StoreError. Every call is recorded in ``calls``. Calls are
    serialized so a sweep thread and the tail loop can share one instance.
    """

    def __init__(self):
        self.docs: dict[str, dict] = {}
        self.mappings: dict[str, dict] = {}
        self.fail_next: dict[str, int] = {}
        self.calls: list[str] = []
        self.bulk_requests: list[list[tuple[str, dict]]] = []
        self.closed = False
        self._lock = threading.RLock()

    def add(self, event: LogEvent) -> str:
        doc_id = event_id(event)
        with self._lock:
            self.docs[doc_id] = event_to_document(event)
        return doc_id

    def _enter(self, operation: str):
        self.calls.append(operation)
        if self.fail_next.get(operation, 0) > 0:
            self.fail_next[operation] -= 1
            raise StoreError(operation, ConnectionError("injected failure"))

    def info(self):
        with self._lock:
            self._enter("info")
            return {"version": {"number": "8.0.0"}}

    def get_mapping(self, index):
        with self._lock:
            self._enter("get_mapping")
            return self.mappings.get(index)

    def create_index(self, index, mapping):
        with self._lock:
            self._enter("create_index")
            self.mappings[index] = dict(mapping["properties"])

    def count_before(self, index, cutoff):
        with self._lock:
            self._enter("count")
            return sum(1 for d in self.docs.values() if d["timestamp"] < cutoff)

    def bulk_index(self, index, docs, timeout):
        with self._lock:
            self._enter("bulk")
            self.bulk_requests.append(list(docs))
            markers = []
            for doc_id, body in docs:
                markers.append("updated" if doc_id in self.docs else "created")
                self.docs[doc_id] = dict(body)
            return markers

    def search_range(self, index, start, cutoff, size):
        with self._lock:
            self._enter("search")
            hits = [
                (doc_id, dict(body)) for doc_id, body in self.docs.items()
                if start <= body["timestamp"] < cutoff
            ]
        hits.sort(key=lambda hit: hit[1]["timestamp"])
        return hits[:size]

    def delete_before(self, index, cutoff):
        with self._lock:
            self._enter("delete")
            doomed = [k for k, d in self.docs.items() if d["timestamp"] < cutoff]
            for doc_id in doomed:
                del self.docs[doc_id]
            return len(doomed)

    def close(self):
        self.closed = True


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def sample_line() -> str:
    return SAMPLE_LINE


@pytest.fixture()
def event_factory():
    return make_event
