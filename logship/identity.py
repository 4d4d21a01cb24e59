"""Deterministic document ids for access log events."""

import hashlib

from logship.models import LogEvent


def event_id(event: LogEvent) -> str:
    """SHA-1 of the decimal timestamp followed by the primary IP, as hex.

    Two events sharing (timestamp, primary_ip) get the same id, so the later
    one overwrites the earlier one in the store. Re-indexing the same line is
    therefore idempotent.
    """
    key = f"{event.timestamp}{event.primary_ip}"
    return hashlib.sha1(key.encode("utf-8")).hexdigest()
