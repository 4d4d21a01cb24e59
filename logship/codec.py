"""Access log codec: line -> LogEvent, LogEvent -> line, and source sampling.

Grammar (one line, whitespace and quote delimited)::

    <addr>[, <addr>] <ident> <user> [<time>] "<vhost>" "<request>" <status> <size> "<referer>" "<user agent>"

The client address field may carry a forwarded-for pair separated by a comma.
Quoted fields are copied verbatim, internal quotes included; a literal ``-``
means the field is absent.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from logship.models import (
    BAD_IP,
    BAD_NUMBER,
    BAD_TIME,
    MALFORMED,
    MAX_SIZE,
    MAX_STATUS_CODE,
    MAX_TIMESTAMP,
    LogEvent,
    Rejected,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

_ACCESS_RE = re.compile(
    r'^(?P<addrs>[^\[]+?) \S+ \S+ '
    r'\[(?P<time>[^\]]+)\] '
    r'"(?P<host>[^"]*)" '
    r'"(?P<request>.*)" '
    r'(?P<status>\S+) '
    r'(?P<size>\S+) '
    r'"(?P<referer>.*)" '
    r'"(?P<user_agent>.*)"$'
)

_TIME_FORMAT = "%d/%b/%Y:%H:%M:%S %z"

ABSENT = "-"

DEFAULT_SAMPLE_SIZE = 10
DEFAULT_CONFIDENCE_THRESHOLD = 0.75
MIN_SAMPLE_LINES = 4
# raw lines read per sampled line before giving up on a mostly blank file
MAX_LINES_PER_SAMPLE = 10

# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------


def _is_ip(text: str) -> bool:
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def _split_addresses(field: str) -> tuple[str, str | None]:
    """Split '1.2.3.4, 5.6.7.8' -> ('1.2.3.4', '5.6.7.8') on the first comma."""
    if "," not in field:
        return field.strip(), None
    primary, secondary = field.split(",", 1)
    return primary.strip(), secondary.strip()


def _parse_time(text: str) -> int:
    """Convert '01/Jan/2023:00:00:00 +0000' to epoch seconds, 0 if unparseable."""
    try:
        dt = datetime.strptime(text, _TIME_FORMAT)
    except ValueError:
        return 0
    seconds = int(dt.timestamp())
    if seconds <= 0 or seconds > MAX_TIMESTAMP:
        return 0
    return seconds


def _parse_unsigned(text: str, maximum: int) -> int | None:
    if not text.isascii() or not text.isdigit():
        return None
    value = int(text)
    if value > maximum:
        return None
    return value


def _optional(text: str) -> str | None:
    return None if text == ABSENT else text


def _quoted(value: str | None) -> str:
    return ABSENT if value is None else value


# ---------------------------------------------------------------------------
# Parse / serialize
# ---------------------------------------------------------------------------


def parse_line(line: str) -> LogEvent | Rejected:
    """Parse one access log line into a LogEvent, or explain why not."""
    stripped = line.strip()
    m = _ACCESS_RE.match(stripped)
    if not m:
        return Rejected(MALFORMED, line)

    primary_ip, alt_ip = _split_addresses(m.group("addrs"))
    if not _is_ip(primary_ip):
        return Rejected(BAD_IP, line)
    if alt_ip is not None and not _is_ip(alt_ip):
        alt_ip = None

    timestamp = _parse_time(m.group("time"))
    if timestamp == 0:
        return Rejected(BAD_TIME, line)

    status_code = _parse_unsigned(m.group("status"), MAX_STATUS_CODE)
    size = _parse_unsigned(m.group("size"), MAX_SIZE)
    if status_code is None or size is None:
        return Rejected(BAD_NUMBER, line)

    return LogEvent(
        primary_ip=primary_ip,
        alt_ip=alt_ip,
        host=_optional(m.group("host")),
        request=_optional(m.group("request")),
        status_code=status_code,
        size=size,
        referer=_optional(m.group("referer")),
        user_agent=_optional(m.group("user_agent")),
        timestamp=timestamp,
    )


def serialize_event(event: LogEvent) -> str:
    """Render an event back into the access log grammar (UTC timestamps)."""
    addrs = event.primary_ip
    if event.alt_ip is not None:
        addrs = f"{event.primary_ip}, {event.alt_ip}"
    when = datetime.fromtimestamp(event.timestamp, tz=timezone.utc).strftime(_TIME_FORMAT)
    return (
        f'{addrs} - - [{when}] '
        f'"{_quoted(event.host)}" '
        f'"{_quoted(event.request)}" '
        f'{event.status_code} {event.size} '
        f'"{_quoted(event.referer)}" '
        f'"{_quoted(event.user_agent)}"'
    )


# ---------------------------------------------------------------------------
# Source sampling
# ---------------------------------------------------------------------------


class SourceStatus(Enum):
    EMPTY = "empty"
    TOO_SHORT = "too_short"
    LOW_CONFIDENCE = "low_confidence"
    OK = "ok"


@dataclass(frozen=True)
class SourceVerdict:
    status: SourceStatus
    ratio: float = 0.0
    sampled: int = 0

    @property
    def ok(self) -> bool:
        return self.status is SourceStatus.OK


def validate_source(
    path: str,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
    threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
) -> SourceVerdict:
    """Decide whether *path* looks like an access log worth tailing.

    Reads up to *sample_size* non-blank lines from the head of the file, and
    no more than ten raw lines per sampled line, and parses each one. A file with no lines is ``EMPTY``; fewer than four lines
    is ``TOO_SHORT``; a parse success ratio under *threshold* (including 0.0)
    is ``LOW_CONFIDENCE``.
    """
    sampled = 0
    accepted = 0
    max_lines = sample_size * MAX_LINES_PER_SAMPLE
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for read, line in enumerate(f):
            if sampled >= sample_size or read >= max_lines:
                break
            if not line.strip():
                continue
            sampled += 1
            if isinstance(parse_line(line), LogEvent):
                accepted += 1

    if sampled == 0:
        return SourceVerdict(SourceStatus.EMPTY)

    ratio = accepted / sampled
    logger.debug("Sampled %d line(s) from %s, %d parsed (%.2f)", sampled, path, accepted, ratio)
    if sampled < MIN_SAMPLE_LINES:
        return SourceVerdict(SourceStatus.TOO_SHORT, ratio, sampled)
    if ratio < threshold:
        return SourceVerdict(SourceStatus.LOW_CONFIDENCE, ratio, sampled)
    return SourceVerdict(SourceStatus.OK, ratio, sampled)
