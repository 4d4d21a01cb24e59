"""Index mapping the pipeline expects, and checks against it.

``check_schema`` compares the mapping with the LogEvent document fields and is
run once at startup. ``check_remote_schema`` compares it with what the store
reports for the target index.
"""

import copy
import logging
from enum import Enum

from logship.errors import SchemaMismatchError
from logship.models import event_field_names
from logship.store import DocumentStore

logger = logging.getLogger(__name__)

_TEXT = {
    "type": "text",
    "fields": {"keyword": {"type": "keyword", "ignore_above": 256}},
}

SCHEMA_PROPERTIES: dict[str, dict] = {
    "primary_ip": {"type": "ip"},
    "alt_ip": {"type": "ip"},
    "host": {"type": "keyword", "ignore_above": 256},
    "request": _TEXT,
    "referer": _TEXT,
    "status_code": {"type": "integer"},
    "size": {"type": "long"},
    "user_agent": _TEXT,
    "timestamp": {"type": "date", "format": "epoch_second"},
}


def index_mapping() -> dict:
    """Full mapping body used when creating the index."""
    return {
        "dynamic": "false",
        "properties": copy.deepcopy(SCHEMA_PROPERTIES),
    }


def check_schema(
    properties: dict[str, dict] | None = None,
    event_fields: list[str] | None = None,
) -> None:
    """Raise SchemaMismatchError if the mapping and LogEvent disagree on any field."""
    mapping_fields = set(SCHEMA_PROPERTIES if properties is None else properties)
    model_fields = set(event_field_names() if event_fields is None else event_fields)

    not_in_model = sorted(mapping_fields - model_fields)
    if not_in_model:
        raise SchemaMismatchError(not_in_model[0], "the event model")
    not_in_mapping = sorted(model_fields - mapping_fields)
    if not_in_mapping:
        raise SchemaMismatchError(not_in_mapping[0], "the index mapping")


class SchemaVerdict(Enum):
    COMPATIBLE = "compatible"
    INCOMPATIBLE = "incompatible"
    MISSING = "missing"


def check_remote_schema(store: DocumentStore, index: str) -> SchemaVerdict:
    """Compare the store's mapping for *index* with ours, field set only.

    Raises StoreError when the mapping cannot be fetched.
    """
    properties = store.get_mapping(index)
    if properties is None:
        return SchemaVerdict.MISSING

    remote = set(properties)
    ours = set(SCHEMA_PROPERTIES)
    if remote != ours:
        logger.warning(
            "Index %s mapping differs: unexpected=%s missing=%s",
            index, sorted(remote - ours), sorted(ours - remote),
        )
        return SchemaVerdict.INCOMPATIBLE
    return SchemaVerdict.COMPATIBLE
