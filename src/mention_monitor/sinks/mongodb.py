from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

import pymongo
from pymongo.errors import DuplicateKeyError, PyMongoError

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.utils.datetime_utils import utc_now

from .base import DeliveryResult, deliver_each

logger = logging.getLogger(__name__)

_INDEXES: list[tuple[list[tuple[str, int]], dict[str, Any]]] = [
    ([("id", pymongo.ASCENDING)], {"unique": True}),
    ([("url", pymongo.ASCENDING)], {}),
    ([("discovered_at", pymongo.DESCENDING)], {}),
]


class MongoSink:
    """Documents in a ``mentions`` collection, unique on the mention id.

    A duplicate-key rejection counts as a skip, not a failure.
    """

    name = "mongodb"

    def __init__(
        self,
        uri: str,
        *,
        database: str = "mention_monitor",
        collection: str = "mentions",
        client_factory: Callable[..., Any] = pymongo.MongoClient,
        timeout_ms: int = 10000,
    ) -> None:
        self.uri = uri
        self.database = database
        self.collection = collection
        self._client_factory = client_factory
        self.timeout_ms = timeout_ms

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        client = self._connect()
        try:
            collection = client[self.database][self.collection]
            _ensure_indexes(collection)
            return deliver_each(
                self.name,
                mentions,
                lambda mention: _insert_mention(collection, mention),
            )
        finally:
            client.close()

    def exists(self, mention_id: str) -> bool:
        client = self._connect()
        try:
            collection = client[self.database][self.collection]
            return collection.count_documents({"id": mention_id}, limit=1) > 0
        except PyMongoError as exc:
            raise SinkError(f"failed to query MongoDB: {exc}") from exc
        finally:
            client.close()

    def _connect(self) -> Any:
        try:
            client = self._client_factory(self.uri, serverSelectionTimeoutMS=self.timeout_ms)
            client.admin.command("ping")
        except PyMongoError as exc:
            raise SinkError(f"failed to connect to MongoDB: {exc}") from exc
        return client


def _ensure_indexes(collection: Any) -> None:
    for keys, options in _INDEXES:
        try:
            collection.create_index(keys, **options)
        except PyMongoError as exc:
            logger.warning("Failed to create MongoDB index on %s: %s", keys[0][0], exc)


def build_document(mention: Mention) -> dict[str, Any]:
    return {
        "id": mention.id,
        "source": mention.source,
        "type": mention.kind,
        "keyword": mention.keyword,
        "title": mention.title,
        "content": mention.content,
        "url": mention.url,
        "author": mention.author,
        "discovered_at": mention.discovered_at,
        "published_at": mention.published_at,
        "status": "unread",
        "created_at": utc_now(),
    }


def _insert_mention(collection: Any, mention: Mention) -> bool:
    try:
        collection.insert_one(build_document(mention))
    except DuplicateKeyError:
        logger.debug("MongoDB already has mention %s", mention.id)
        return False
    return True
