from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, unquote, urlsplit

import psycopg2
import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.sinks import (
    BarkSink,
    MongoSink,
    NotionSink,
    PostgresSink,
    SlackWebhookSink,
    build_slack_payload,
    render_slack_message_text,
)
from mention_monitor.sinks.notion import build_page_payload


class _DummyResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self) -> Any:
        return self._payload


def _mention(mention_id: str = "hn_1", **overrides: Any) -> Mention:
    values: dict[str, Any] = {
        "id": mention_id,
        "source": "hackernews",
        "kind": "post",
        "keyword": "lazypg",
        "url": f"https://news.ycombinator.com/item?id={mention_id}",
        "title": "Show HN: lazypg",
        "content": "A terminal UI for PostgreSQL",
        "author": "pg_fan",
        "discovered_at": datetime(2026, 1, 5, 8, 30, tzinfo=timezone.utc),
        "published_at": datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return Mention(**values)


def test_slack_payload_lists_every_mention() -> None:
    payload = build_slack_payload([_mention("hn_1"), _mention("hn_2", title="")])

    assert payload["text"] == "2 new mentions | Hacker News: Show HN: lazypg"
    assert len(payload["blocks"]) == 3
    first_block = payload["blocks"][1]["text"]["text"]
    assert "*<https://news.ycombinator.com/item?id=hn_1|Show HN: lazypg>*" in first_block
    assert "*Published:* 2026-01-05 08:00 UTC" in first_block
    # Untitled mentions fall back to their URL.
    assert "|https://news.ycombinator.com/item?id=hn_2>" in payload["blocks"][2]["text"]["text"]


def test_slack_payload_caps_blocks_for_large_batches() -> None:
    mentions = [_mention(f"hn_{index}") for index in range(25)]

    payload = build_slack_payload(mentions)

    assert len(payload["blocks"]) == 22
    assert payload["blocks"][-1]["elements"][0]["text"] == "... and 5 more"
    assert render_slack_message_text(mentions).endswith("... and 5 more")


def test_slack_sink_posts_one_message_per_batch(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []

    def fake_post(url: str, **kwargs: Any) -> _DummyResponse:
        calls.append({"url": url, **kwargs})
        return _DummyResponse(200)

    monkeypatch.setattr("requests.post", fake_post)

    result = SlackWebhookSink("https://hooks.slack.test/abc").send(
        [_mention("hn_1"), _mention("hn_2")]
    )

    assert len(calls) == 1
    assert calls[0]["url"] == "https://hooks.slack.test/abc"
    assert result.delivered == 2
    assert result.ok


def test_slack_sink_raises_on_error_status(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "requests.post", lambda *args, **kwargs: _DummyResponse(400, text="invalid_payload")
    )

    with pytest.raises(SinkError, match="invalid_payload"):
        SlackWebhookSink("https://hooks.slack.test/abc").send([_mention()])


def test_bark_each_mode_pushes_one_notification_per_mention(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    urls: list[str] = []

    def fake_get(url: str, **kwargs: Any) -> _DummyResponse:
        urls.append(url)
        return _DummyResponse(500 if "hn_2" in url else 200)

    monkeypatch.setattr("requests.get", fake_get)

    sink = BarkSink("device/key", server_url="https://bark.example/", group="monitor")
    result = sink.send([_mention("hn_1"), _mention("hn_2"), _mention("hn_3")])

    assert len(urls) == 3
    assert result.delivered == 2
    assert result.failed_ids == ["hn_2"]

    parsed = urlsplit(urls[0])
    key, title, body = parsed.path.strip("/").split("/")
    assert parsed.netloc == "bark.example"
    assert unquote(key) == "device/key"
    assert unquote(title) == "New mention on Hacker News"
    assert unquote(body) == "Title: Show HN: lazypg\nAuthor: pg_fan"
    query = parse_qs(parsed.query)
    assert query["url"] == ["https://news.ycombinator.com/item?id=hn_1"]
    assert query["group"] == ["monitor"]
    assert query["icon"] == ["https://news.ycombinator.com/favicon.ico"]


def test_bark_batch_mode_sends_single_summary(monkeypatch: pytest.MonkeyPatch) -> None:
    urls: list[str] = []

    def fake_get(url: str, **kwargs: Any) -> _DummyResponse:
        urls.append(url)
        return _DummyResponse(200)

    monkeypatch.setattr("requests.get", fake_get)

    mentions = [_mention(f"hn_{index}") for index in range(7)]
    result = BarkSink("key", mode="batch").send(mentions)

    assert len(urls) == 1
    assert result.delivered == 7
    _, title, body = urlsplit(urls[0]).path.strip("/").split("/")
    assert unquote(title) == "7 new mentions"
    lines = unquote(body).split("\n")
    assert len(lines) == 6
    assert lines[-1] == "... and 2 more"


def test_notion_page_payload_maps_mention_fields() -> None:
    payload = build_page_payload("db-1", _mention(content="x" * 2500))

    properties = payload["properties"]
    assert payload["parent"] == {"database_id": "db-1"}
    assert properties["Type"] == {"select": {"name": "post"}}
    assert properties["URL"] == {"url": "https://news.ycombinator.com/item?id=hn_1"}
    assert len(properties["Content"]["rich_text"][0]["text"]["content"]) == 2000
    assert properties["Discovered"]["date"]["start"] == "2026-01-05T08:30:00+00:00"


def test_notion_skip_existing_counts_existing_pages_as_skipped(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    posted: list[str] = []

    def fake_post(url: str, **kwargs: Any) -> _DummyResponse:
        posted.append(url)
        if url.endswith("/query"):
            exists = kwargs["json"]["filter"]["url"]["equals"].endswith("hn_1")
            return _DummyResponse(200, payload={"results": [{"id": "page"}] if exists else []})
        assert kwargs["headers"]["Notion-Version"] == "2022-06-28"
        return _DummyResponse(200)

    monkeypatch.setattr("requests.post", fake_post)

    sink = NotionSink("token", "db-1", skip_existing=True)
    result = sink.send([_mention("hn_1"), _mention("hn_2")])

    assert result.skipped == 1
    assert result.delivered == 1
    assert sum(1 for url in posted if url.endswith("/pages")) == 1


class _FakeCursor:
    def __init__(self, existing: set[str], fail_ids: set[str]) -> None:
        self.existing = existing
        self.fail_ids = fail_ids
        self.rowcount = -1
        self.executed: list[str] = []
        self.last_row: tuple | None = None

    def fetchone(self) -> tuple | None:
        return self.last_row

    def __enter__(self) -> _FakeCursor:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def execute(self, sql: str, params: tuple | None = None) -> None:
        self.executed.append(sql)
        if params is None:
            return
        mention_id = params[0]
        if sql.startswith("SELECT EXISTS"):
            self.last_row = (mention_id in self.existing,)
            return
        if mention_id in self.fail_ids:
            raise psycopg2.DataError("value too long")
        self.rowcount = 0 if mention_id in self.existing else 1
        self.existing.add(mention_id)


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor
        self.autocommit = False
        self.closed = False

    def cursor(self) -> _FakeCursor:
        return self._cursor

    def close(self) -> None:
        self.closed = True


def test_postgres_sink_inserts_and_skips_existing_rows() -> None:
    cursor = _FakeCursor(existing={"hn_1"}, fail_ids={"hn_3"})
    connection = _FakeConnection(cursor)
    seen_dsn: list[str] = []

    def fake_connect(dsn: str, **kwargs: Any) -> _FakeConnection:
        seen_dsn.append(dsn)
        return connection

    sink = PostgresSink("postgresql://localhost/mentions", connect=fake_connect)
    result = sink.send([_mention("hn_1"), _mention("hn_2"), _mention("hn_3"), _mention("hn_4")])

    assert seen_dsn == ["postgresql://localhost/mentions"]
    assert connection.autocommit
    assert connection.closed
    assert "CREATE TABLE IF NOT EXISTS mentions" in cursor.executed[0]
    assert result.attempted == 4
    assert result.skipped == 1
    assert result.delivered == 2
    assert result.failed_ids == ["hn_3"]


def test_postgres_connection_failure_raises_sink_error() -> None:
    def failing_connect(dsn: str, **kwargs: Any) -> Any:
        raise psycopg2.OperationalError("could not connect")

    with pytest.raises(SinkError, match="could not connect"):
        PostgresSink("postgresql://nowhere", connect=failing_connect).send([_mention()])


def test_postgres_exists_checks_by_id() -> None:
    cursor = _FakeCursor(existing={"hn_1"}, fail_ids=set())
    sink = PostgresSink(
        "postgresql://localhost/mentions",
        connect=lambda dsn, **kwargs: _FakeConnection(cursor),
    )

    assert sink.exists("hn_1")
    assert not sink.exists("hn_9")


class _FakeCollection:
    def __init__(self, existing: set[str], fail_ids: set[str]) -> None:
        self.existing = existing
        self.fail_ids = fail_ids
        self.documents: list[dict[str, Any]] = []
        self.indexes: list[tuple[list, dict]] = []

    def create_index(self, keys: list, **options: Any) -> str:
        self.indexes.append((keys, options))
        return keys[0][0]

    def insert_one(self, document: dict[str, Any]) -> None:
        mention_id = document["id"]
        if mention_id in self.fail_ids:
            raise ValueError("document too large")
        if mention_id in self.existing:
            raise DuplicateKeyError("E11000 duplicate key error")
        self.existing.add(mention_id)
        self.documents.append(document)

    def count_documents(self, query: dict[str, Any], **kwargs: Any) -> int:
        return 1 if query["id"] in self.existing else 0


class _FakeAdmin:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.commands: list[str] = []

    def command(self, name: str) -> dict[str, Any]:
        self.commands.append(name)
        if self.error is not None:
            raise self.error
        return {"ok": 1}


class _FakeMongoClient:
    def __init__(self, collection: _FakeCollection, admin: _FakeAdmin | None = None) -> None:
        self.collection = collection
        self.admin = admin or _FakeAdmin()
        self.opened: list[tuple[str, str]] = []
        self.closed = False

    def __getitem__(self, database: str) -> Any:
        client = self

        class _Database:
            def __getitem__(self, name: str) -> _FakeCollection:
                client.opened.append((database, name))
                return client.collection

        return _Database()

    def close(self) -> None:
        self.closed = True


def test_mongodb_sink_inserts_and_skips_duplicate_ids() -> None:
    collection = _FakeCollection(existing={"hn_1"}, fail_ids={"hn_3"})
    client = _FakeMongoClient(collection)
    seen_uri: list[str] = []

    def fake_client(uri: str, **kwargs: Any) -> _FakeMongoClient:
        seen_uri.append(uri)
        return client

    sink = MongoSink("mongodb://localhost:27017", client_factory=fake_client)
    result = sink.send([_mention("hn_1"), _mention("hn_2"), _mention("hn_3"), _mention("hn_4")])

    assert seen_uri == ["mongodb://localhost:27017"]
    assert client.admin.commands == ["ping"]
    assert client.opened == [("mention_monitor", "mentions")]
    assert client.closed
    assert collection.indexes[0] == ([("id", 1)], {"unique": True})
    assert result.attempted == 4
    assert result.skipped == 1
    assert result.delivered == 2
    assert result.failed_ids == ["hn_3"]

    document = collection.documents[0]
    assert document["id"] == "hn_2"
    assert document["type"] == "post"
    assert document["status"] == "unread"
    assert document["published_at"] == datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)


def test_mongodb_connection_failure_raises_sink_error() -> None:
    client = _FakeMongoClient(
        _FakeCollection(existing=set(), fail_ids=set()),
        admin=_FakeAdmin(ServerSelectionTimeoutError("no servers available")),
    )

    with pytest.raises(SinkError, match="no servers available"):
        MongoSink("mongodb://nowhere", client_factory=lambda uri, **kwargs: client).send(
            [_mention()]
        )


def test_mongodb_exists_checks_by_id() -> None:
    collection = _FakeCollection(existing={"hn_1"}, fail_ids=set())
    sink = MongoSink(
        "mongodb://localhost:27017",
        client_factory=lambda uri, **kwargs: _FakeMongoClient(collection),
    )

    assert sink.exists("hn_1")
    assert not sink.exists("hn_9")
