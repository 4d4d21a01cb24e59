"""Document store access: the capability interface and its Elasticsearch backend.

The pipeline only ever needs six things from the store: a health check, the
index mapping (read and create), a count of documents older than a cutoff, a
bulk upsert by id, a time-ordered range search, and a delete of everything
older than a cutoff.
"""

import logging
from typing import Any, Protocol

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from logship.errors import StoreError

logger = logging.getLogger(__name__)

TIME_FIELD = "timestamp"

# (document id, document body)
Document = tuple[str, dict[str, Any]]


class DocumentStore(Protocol):
    def info(self) -> dict[str, Any]:
        ...

    def get_mapping(self, index: str) -> dict[str, Any] | None:
        """Return the index's mapped properties, or None if the index/mapping is absent."""
        ...

    def create_index(self, index: str, mapping: dict[str, Any]) -> None:
        ...

    def count_before(self, index: str, cutoff: int) -> int:
        ...

    def bulk_index(self, index: str, docs: list[Document], timeout: float) -> list[str]:
        """Upsert *docs* by id and return one result marker per document, in order."""
        ...

    def search_range(self, index: str, start: int, cutoff: int, size: int) -> list[Document]:
        """Up to *size* documents with start <= timestamp < cutoff, oldest first."""
        ...

    def delete_before(self, index: str, cutoff: int) -> int:
        ...

    def close(self) -> None:
        ...


def _before(cutoff: int, start: int | None = None) -> dict[str, Any]:
    bounds: dict[str, int] = {"lt": cutoff}
    if start is not None:
        bounds["gte"] = start
    return {"range": {TIME_FIELD: bounds}}


class ElasticsearchStore:
    """DocumentStore backed by an Elasticsearch cluster.

    Every client failure (HTTP error status, connection error, timeout) is
    re-raised as StoreError so callers deal with a single exception type.
    """

    def __init__(self, url: str, client: Elasticsearch | None = None, **client_options: Any):
        self._url = url
        self._client = client if client is not None else Elasticsearch(url, **client_options)

    @property
    def url(self) -> str:
        return self._url

    def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (ApiError, TransportError) as exc:
            raise StoreError(operation, exc) from exc

    def info(self) -> dict[str, Any]:
        return dict(self._call("info", self._client.info))

    def get_mapping(self, index: str) -> dict[str, Any] | None:
        try:
            resp = self._client.indices.get_mapping(index=index)
        except NotFoundError:
            return None
        except (ApiError, TransportError) as exc:
            raise StoreError("get_mapping", exc) from exc

        body = dict(resp)
        entry = body.get(index)
        if entry is None and len(body) == 1:
            # index was an alias, keyed by the concrete index name
            entry = next(iter(body.values()))
        if not entry:
            return None
        properties = entry.get("mappings", {}).get("properties")
        if not isinstance(properties, dict):
            return None
        return properties

    def create_index(self, index: str, mapping: dict[str, Any]) -> None:
        self._call("create_index", self._client.indices.create, index=index, mappings=mapping)
        logger.info("Created index %s on %s", index, self._url)

    def count_before(self, index: str, cutoff: int) -> int:
        resp = self._call("count", self._client.count, index=index, query=_before(cutoff))
        return int(resp["count"])

    def bulk_index(self, index: str, docs: list[Document], timeout: float) -> list[str]:
        operations: list[dict[str, Any]] = []
        for doc_id, body in docs:
            operations.append({"index": {"_index": index, "_id": doc_id}})
            operations.append(body)
        client = self._client.options(request_timeout=timeout)
        resp = self._call("bulk", client.bulk, operations=operations)

        markers = []
        for item in resp["items"]:
            result = next(iter(item.values()))
            markers.append(result.get("result", "error"))
        return markers

    def search_range(self, index: str, start: int, cutoff: int, size: int) -> list[Document]:
        resp = self._call(
            "search",
            self._client.search,
            index=index,
            query=_before(cutoff, start),
            sort=[{TIME_FIELD: {"order": "asc"}}],
            size=size,
        )
        return [(hit["_id"], hit["_source"]) for hit in resp["hits"]["hits"]]

    def delete_before(self, index: str, cutoff: int) -> int:
        resp = self._call(
            "delete_by_query",
            self._client.delete_by_query,
            index=index,
            query=_before(cutoff),
            conflicts="proceed",
            refresh=True,
        )
        return int(resp.get("deleted", 0))

    def close(self) -> None:
        self._client.close()


def is_reachable(store: DocumentStore) -> bool:
    """Health check: True if the store answers an info request."""
    try:
        store.info()
    except StoreError as exc:
        logger.debug("Store unreachable: %s", exc)
        return False
    return True
