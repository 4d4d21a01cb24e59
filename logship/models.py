"""Access log event model and its store document form."""

from dataclasses import asdict, dataclass, fields
from typing import Any

# Rejection reasons reported by the codec
MALFORMED = "malformed"
BAD_IP = "bad ip"
BAD_TIME = "bad time"
BAD_NUMBER = "bad number"

MAX_STATUS_CODE = 0xFFFF
MAX_SIZE = 0xFFFFFFFF
MAX_TIMESTAMP = 0xFFFFFFFF


@dataclass(frozen=True)
class LogEvent:
    """One accepted access log line.

    Text fields hold ``None`` where the log wrote a literal ``-``.
    ``timestamp`` is seconds since the epoch and is never 0.
    """

    primary_ip: str
    request: str | None
    status_code: int
    size: int
    timestamp: int
    alt_ip: str | None = None
    host: str | None = None
    referer: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class Rejected:
    """A line the codec refused, with the reason it was refused."""

    reason: str
    line: str


def event_field_names() -> list[str]:
    return [f.name for f in fields(LogEvent)]


def event_to_document(event: LogEvent) -> dict[str, Any]:
    """Convert an event to the document body stored in the index."""
    return asdict(event)


def event_from_document(source: dict[str, Any]) -> LogEvent:
    """Rebuild an event from a stored document body.

    Raises KeyError/ValueError/TypeError when a required field is missing or
    not numeric.
    """
    return LogEvent(
        primary_ip=str(source["primary_ip"]),
        request=source.get("request"),
        status_code=int(source["status_code"]),
        size=int(source["size"]),
        timestamp=int(source["timestamp"]),
        alt_ip=source.get("alt_ip"),
        host=source.get("host"),
        referer=source.get("referer"),
        user_agent=source.get("user_agent"),
    )
