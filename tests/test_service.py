from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Sequence

from mention_monitor.aggregator import Aggregator
from mention_monitor.errors import SinkError, SourceError, StateStoreError
from mention_monitor.models import Mention, RunState
from mention_monitor.service import MentionMonitorService, RunStatus
from mention_monitor.sinks import DeliveryResult, deliver_each
from mention_monitor.store import JsonStateStore
from mention_monitor.utils.deadline import Deadline

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _mention(mention_id: str, source: str = "hackernews") -> Mention:
    return Mention(
        id=mention_id,
        source=source,
        kind="post",
        keyword="lazypg",
        url=f"https://example.test/{mention_id}",
        title=f"About lazypg ({mention_id})",
    )


class StaticSource:
    def __init__(self, name: str, mentions: list[Mention]) -> None:
        self.name = name
        self._mentions = mentions

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        return list(self._mentions)


class BrokenSource:
    name = "broken"

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> list[Mention]:
        raise SourceError("upstream unavailable")


class RecordingSink:
    def __init__(self, name: str = "recording", fail_ids: set[str] | None = None) -> None:
        self.name = name
        self.fail_ids = fail_ids or set()
        self.batches: list[list[str]] = []
        self.attempted: list[str] = []

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        self.batches.append([mention.id for mention in mentions])
        return deliver_each(self.name, mentions, self._deliver)

    def _deliver(self, mention: Mention) -> None:
        self.attempted.append(mention.id)
        if mention.id in self.fail_ids:
            raise SinkError(f"rejected {mention.id}")


class BrokenSink:
    name = "broken-sink"

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        raise SinkError("backend down")


class UnwritableStore(JsonStateStore):
    def save(self, state: RunState) -> None:
        raise StateStoreError("read-only file system")


def _service(
    store: JsonStateStore,
    sources: list,
    sinks: list,
    **kwargs,
) -> MentionMonitorService:
    return MentionMonitorService(
        aggregator=Aggregator(sources, clock=lambda: FIXED_NOW),
        store=store,
        sinks=sinks,
        keywords=["lazypg"],
        timeout_seconds=10,
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


def test_first_run_accepts_candidate_and_dispatches_to_every_sink(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "mentions.json")
    first_sink = RecordingSink("first")
    second_sink = RecordingSink("second")

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1")])],
        [first_sink, second_sink],
    ).run_once()

    assert report.status is RunStatus.COMPLETED
    assert report.ok
    assert report.new_mentions == 1
    assert first_sink.batches == [["hn_1"]]
    assert second_sink.batches == [["hn_1"]]

    state = store.load()
    assert [mention.id for mention in state.mentions] == ["hn_1"]
    assert state.mentions[0].discovered_at == FIXED_NOW
    assert state.last_updated == FIXED_NOW


def test_second_run_with_same_candidate_dispatches_nothing(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "mentions.json")
    store.save(RunState(last_updated=FIXED_NOW, mentions=[_mention("hn_1")]))
    sink = RecordingSink()

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1")])],
        [sink],
    ).run_once()

    assert report.ok
    assert report.candidates == 1
    assert report.new_mentions == 0
    assert report.sinks_attempted == 0
    assert sink.batches == []
    assert [mention.id for mention in store.load().mentions] == ["hn_1"]


def test_duplicate_ids_across_sources_are_accepted_once(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "mentions.json")
    sink = RecordingSink()

    report = _service(
        store,
        [
            StaticSource("github", [_mention("gh_42", source="github")]),
            StaticSource("google", [_mention("gh_42", source="google")]),
        ],
        [sink],
    ).run_once()

    assert report.candidates == 2
    assert report.new_mentions == 1
    assert sink.batches == [["gh_42"]]

    state = store.load()
    assert [mention.id for mention in state.mentions] == ["gh_42"]
    # First source in registration order wins.
    assert state.mentions[0].source == "github"


def test_failed_item_does_not_stop_the_rest_of_the_batch(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "mentions.json")
    sink = RecordingSink(fail_ids={"hn_2"})

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1"), _mention("hn_2"), _mention("hn_3")])],
        [sink],
    ).run_once()

    assert report.status is RunStatus.COMPLETED
    assert sink.attempted == ["hn_1", "hn_2", "hn_3"]
    assert report.items_failed == 1
    assert report.sinks_failed == 1
    assert any("hn_2" in error for error in report.errors)
    assert [mention.id for mention in store.load().mentions] == ["hn_1", "hn_2", "hn_3"]


def test_corrupt_state_aborts_before_dispatch_and_keeps_file(tmp_path) -> None:
    state_path = tmp_path / "mentions.json"
    state_path.write_text("{not json", encoding="utf-8")
    store = JsonStateStore(state_path)
    sink = RecordingSink()

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1")])],
        [sink],
    ).run_once()

    assert report.status is RunStatus.ABORTED
    assert not report.ok
    assert report.sources_attempted == 0
    assert sink.batches == []
    assert state_path.read_text(encoding="utf-8") == "{not json"


def test_failing_source_and_sink_are_isolated(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "mentions.json")
    healthy_sink = RecordingSink("healthy")

    report = _service(
        store,
        [BrokenSource(), StaticSource("hackernews", [_mention("hn_1"), _mention("hn_2")])],
        [BrokenSink(), healthy_sink],
    ).run_once()

    assert report.ok
    assert report.sources_attempted == 2
    assert report.sources_failed == 1
    assert report.sinks_attempted == 2
    assert report.sinks_failed == 1
    assert healthy_sink.batches == [["hn_1", "hn_2"]]
    assert [mention.id for mention in store.load().mentions] == ["hn_1", "hn_2"]


def test_dry_run_previews_without_dispatching_or_persisting(tmp_path) -> None:
    state_path = tmp_path / "mentions.json"
    store = JsonStateStore(state_path)
    sink = RecordingSink()
    previewed: list[str] = []

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1")])],
        [sink],
        dry_run=True,
        preview_callback=lambda mention: previewed.append(mention.id),
    ).run_once()

    assert report.ok
    assert report.new_mentions == 1
    assert previewed == ["hn_1"]
    assert sink.batches == []
    assert not state_path.exists()


def test_state_round_trips_between_runs(tmp_path) -> None:
    state_path = tmp_path / "nested" / "mentions.json"
    store = JsonStateStore(state_path)

    _service(store, [StaticSource("hackernews", [_mention("hn_1")])], []).run_once()
    _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1"), _mention("hn_2")])],
        [],
    ).run_once()

    raw = json.loads(state_path.read_text(encoding="utf-8"))
    assert [record["id"] for record in raw["mentions"]] == ["hn_1", "hn_2"]
    assert raw["mentions"][0]["type"] == "post"
    assert raw["last_updated"] == FIXED_NOW.isoformat()


def test_failed_save_aborts_after_sinks_were_called(tmp_path) -> None:
    store = UnwritableStore(tmp_path / "mentions.json")
    sink = RecordingSink()

    report = _service(
        store,
        [StaticSource("hackernews", [_mention("hn_1")])],
        [sink],
    ).run_once()

    assert report.status is RunStatus.ABORTED
    assert not report.ok
    assert sink.batches == [["hn_1"]]
    assert any("failed to save state" in error for error in report.errors)
    assert not (tmp_path / "mentions.json").exists()
