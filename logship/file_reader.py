"""Follows an access log for appended lines."""

import logging
import os
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class FileTailer:
    """Calls *callback* with every non-blank line appended to *path*.

    Waits for the file to appear, starts at its end (or its beginning with
    ``from_start``), reopens it on rotation after draining the old handle, and
    rewinds on truncation. A line is only passed on once its newline has been
    written. ``run`` blocks until *shutdown_event* is set.
    """

    def __init__(
        self,
        path: str,
        shutdown_event: threading.Event,
        callback: Callable[[str], None],
        poll_interval: float = 0.5,
        from_start: bool = False,
    ):
        self._path = path
        self._shutdown = shutdown_event
        self._callback = callback
        self._poll_interval = poll_interval
        self._from_start = from_start
        self._file = None
        self._inode: int | None = None
        self._pending = ""

    def run(self):
        if not self._wait_for_file():
            return

        self._open(seek_end=not self._from_start)
        try:
            while not self._shutdown.is_set():
                if self._rotated() or self._truncated():
                    continue
                line = self._file.readline()
                if not self._feed(line):
                    self._shutdown.wait(self._poll_interval)
        finally:
            self._close()

    def _feed(self, chunk: str) -> bool:
        """Buffer *chunk* until its newline arrives. False if no full line was emitted."""
        if not chunk:
            return False
        if not chunk.endswith("\n"):
            # writer is mid-line
            self._pending += chunk
            return False
        line, self._pending = self._pending + chunk, ""
        self._emit(line)
        return True

    def _emit(self, line: str):
        stripped = line.strip()
        if stripped:
            self._callback(stripped)

    def _wait_for_file(self) -> bool:
        while not self._shutdown.is_set():
            if os.path.exists(self._path):
                return True
            logger.debug("Waiting for %s to appear", self._path)
            self._shutdown.wait(self._poll_interval)
        return False

    def _open(self, seek_end: bool):
        self._file = open(self._path, "r", encoding="utf-8", errors="replace")
        self._inode = os.fstat(self._file.fileno()).st_ino
        if seek_end:
            self._file.seek(0, os.SEEK_END)
        logger.info("Tailing %s (inode=%d)", self._path, self._inode)

    def _close(self):
        if self._file:
            self._file.close()
            self._file = None

    def _rotated(self) -> bool:
        try:
            inode = os.stat(self._path).st_ino
        except FileNotFoundError:
            return False
        if inode == self._inode:
            return False

        logger.info("Rotation detected for %s", self._path)
        for line in self._file:
            self._feed(line)
        if self._pending:
            # nothing more will be appended to the old file
            self._emit(self._pending)
            self._pending = ""
        self._close()
        self._open(seek_end=False)
        return True

    def _truncated(self) -> bool:
        try:
            size = os.path.getsize(self._path)
        except FileNotFoundError:
            return False
        if self._file.tell() > size:
            logger.info("Truncation detected for %s", self._path)
            self._file.seek(0)
            self._pending = ""
            return True
        return False
