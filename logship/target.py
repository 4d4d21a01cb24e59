"""Store target descriptors: ``scheme://host[:port]/index``."""

import re
from dataclasses import dataclass

from logship.errors import InvalidTargetError
from logship.store import ElasticsearchStore

DEFAULT_PORT = 9200

_TARGET_RE = re.compile(
    r'^(?P<protocol>https?)://'
    r'(?P<host>[^/ :]+)'
    r':?(?P<port>[^/ ]*)'
    r'(?P<path>/?[^ #?]*)'
)


def is_target(text: str) -> bool:
    """True if *text* looks like a store URL (used to classify CLI arguments)."""
    return _TARGET_RE.match(text) is not None


def _parse_port(text: str) -> int:
    try:
        port = int(text)
    except ValueError:
        return DEFAULT_PORT
    if not 0 < port < 65536:
        return DEFAULT_PORT
    return port


@dataclass(frozen=True)
class Target:
    protocol: str
    host: str
    index: str
    port: int = DEFAULT_PORT

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    def connect(self, **client_options) -> ElasticsearchStore:
        """Open a new store handle for this target."""
        return ElasticsearchStore(self.url, **client_options)

    def __str__(self) -> str:
        return f"{self.url}/{self.index}"


def parse_target(descriptor: str) -> Target:
    """Parse 'http://host:9200/index'; the port defaults to 9200 if absent or bad."""
    m = _TARGET_RE.match(descriptor.strip())
    if not m:
        raise InvalidTargetError(f"not a store URL: {descriptor!r}")

    index = m.group("path").strip("/")
    if not index or "/" in index:
        raise InvalidTargetError(f"expected exactly one index name in {descriptor!r}")

    return Target(
        protocol=m.group("protocol"),
        host=m.group("host"),
        port=_parse_port(m.group("port")),
        index=index,
    )
