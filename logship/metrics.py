"""Thread-safe pipeline counters, shared by the tail loop and the sweep thread."""

import threading


class PipelineMetrics:
    """Counters for ingestion and retention activity."""

    def __init__(self):
        self._lock = threading.Lock()
        self._lines_read = 0
        self._rejected: dict[str, int] = {}
        self._events_indexed = 0
        self._duplicates_dropped = 0
        self._flush_failures = 0
        self._sweeps_started = 0
        self._sweeps_completed = 0
        self._documents_archived = 0

    def record_line(self):
        with self._lock:
            self._lines_read += 1

    def record_rejected(self, reason: str):
        with self._lock:
            self._rejected[reason] = self._rejected.get(reason, 0) + 1

    def record_flush(self, indexed: int, duplicates: int, failed: bool):
        with self._lock:
            self._events_indexed += indexed
            self._duplicates_dropped += duplicates
            if failed:
                self._flush_failures += 1

    def record_sweep_started(self):
        with self._lock:
            self._sweeps_started += 1

    def record_sweep_completed(self, archived: int):
        with self._lock:
            self._sweeps_completed += 1
            self._documents_archived += archived

    def snapshot(self) -> dict:
        """Return a point-in-time copy of every counter."""
        with self._lock:
            return {
                "lines_read": self._lines_read,
                "lines_rejected": sum(self._rejected.values()),
                "rejected_by_reason": dict(self._rejected),
                "events_indexed": self._events_indexed,
                "duplicates_dropped": self._duplicates_dropped,
                "flush_failures": self._flush_failures,
                "sweeps_started": self._sweeps_started,
                "sweeps_completed": self._sweeps_completed,
                "documents_archived": self._documents_archived,
            }
