from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

import psycopg2

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention

from .base import DeliveryResult, deliver_each

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS mentions (
    id TEXT PRIMARY KEY,
    source TEXT NOT NULL,
    type TEXT NOT NULL,
    keyword TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT,
    url TEXT NOT NULL,
    author TEXT,
    discovered_at TIMESTAMPTZ NOT NULL,
    published_at TIMESTAMPTZ,
    status TEXT DEFAULT 'unread',
    created_at TIMESTAMPTZ DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_mentions_discovered_at ON mentions (discovered_at DESC);
CREATE INDEX IF NOT EXISTS idx_mentions_url ON mentions (url);
"""

_INSERT_SQL = """
INSERT INTO mentions (
    id, source, type, keyword, title, content, url, author,
    discovered_at, published_at, status, created_at
)
VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 'unread', NOW())
ON CONFLICT (id) DO NOTHING
"""

_EXISTS_SQL = "SELECT EXISTS (SELECT 1 FROM mentions WHERE id = %s)"


class PostgresSink:
    """Rows in a ``mentions`` table; rows that already exist are skipped.

    The connection runs in autocommit mode so a failed insert does not
    abort the rest of the batch.
    """

    name = "postgres"

    def __init__(
        self,
        dsn: str,
        *,
        connect: Callable[..., Any] = psycopg2.connect,
        connect_timeout: int = 10,
    ) -> None:
        self.dsn = dsn
        self._connect_fn = connect
        self.connect_timeout = connect_timeout

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        connection = self._connect()
        try:
            with connection.cursor() as cursor:
                try:
                    cursor.execute(_CREATE_TABLE_SQL)
                except psycopg2.Error as exc:
                    raise SinkError(f"failed to create mentions table: {exc}") from exc
                return deliver_each(
                    self.name,
                    mentions,
                    lambda mention: _insert_mention(cursor, mention),
                )
        finally:
            connection.close()

    def exists(self, mention_id: str) -> bool:
        connection = self._connect()
        try:
            with connection.cursor() as cursor:
                cursor.execute(_EXISTS_SQL, (mention_id,))
                row = cursor.fetchone()
        finally:
            connection.close()
        return bool(row and row[0])

    def _connect(self) -> Any:
        try:
            connection = self._connect_fn(self.dsn, connect_timeout=self.connect_timeout)
        except psycopg2.Error as exc:
            raise SinkError(f"failed to connect to PostgreSQL: {exc}") from exc
        connection.autocommit = True
        return connection


def _insert_mention(cursor: Any, mention: Mention) -> bool:
    cursor.execute(
        _INSERT_SQL,
        (
            mention.id,
            mention.source,
            mention.kind,
            mention.keyword,
            mention.title,
            mention.content,
            mention.url,
            mention.author,
            mention.discovered_at,
            mention.published_at,
        ),
    )
    if cursor.rowcount == 0:
        logger.debug("PostgreSQL already has mention %s", mention.id)
        return False
    return True
