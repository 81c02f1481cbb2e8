from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

from mention_monitor.aggregator import Aggregator, SourceResult
from mention_monitor.dedup import DedupStore
from mention_monitor.dispatcher import SinkDispatcher, SinkResult
from mention_monitor.errors import StateStoreError
from mention_monitor.models import Mention
from mention_monitor.sinks import Sink
from mention_monitor.store import StateStore
from mention_monitor.utils.datetime_utils import utc_now
from mention_monitor.utils.deadline import Deadline

logger = logging.getLogger(__name__)


class RunStatus(str, enum.Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(slots=True)
class RunReport:
    status: RunStatus = RunStatus.COMPLETED
    sources_attempted: int = 0
    sources_failed: int = 0
    candidates: int = 0
    dropped: int = 0
    new_mentions: int = 0
    sinks_attempted: int = 0
    sinks_failed: int = 0
    items_failed: int = 0
    source_results: list[SourceResult] = field(default_factory=list)
    sink_results: list[SinkResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.COMPLETED


class MentionMonitorService:
    """One end-to-end run: load, aggregate, dedup, dispatch, persist.

    Only state storage failures abort a run. Source and sink failures are
    recorded on the report and the run carries on.
    """

    def __init__(
        self,
        *,
        aggregator: Aggregator,
        store: StateStore,
        sinks: Sequence[Sink],
        keywords: Sequence[str],
        timeout_seconds: float,
        dispatcher: SinkDispatcher | None = None,
        dry_run: bool = False,
        preview_callback: Callable[[Mention], None] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.aggregator = aggregator
        self.store = store
        self.sinks = list(sinks)
        self.keywords = list(keywords)
        self.timeout_seconds = timeout_seconds
        self.dispatcher = dispatcher or SinkDispatcher(self.sinks)
        self.dry_run = dry_run
        self.preview_callback = preview_callback or _default_preview
        self.clock = clock

    def run_once(self) -> RunReport:
        report = RunReport()

        try:
            state = self.store.load()
        except StateStoreError as exc:
            return _abort(report, f"failed to load state: {exc}")

        deadline = Deadline(self.timeout_seconds)
        aggregate = self.aggregator.collect(self.keywords, deadline)
        report.source_results = aggregate.results
        report.sources_attempted = aggregate.attempted
        report.sources_failed = aggregate.failed
        report.candidates = len(aggregate.candidates)
        report.dropped = aggregate.dropped
        report.errors.extend(
            f"source {result.name}: {result.error}"
            for result in aggregate.results
            if result.error is not None
        )
        logger.info(
            "Collected %d candidates from %d sources (%d failed)",
            report.candidates,
            report.sources_attempted,
            report.sources_failed,
        )

        new_mentions = DedupStore(state).accept(aggregate.candidates)
        report.new_mentions = len(new_mentions)
        logger.info("Found %d new mentions", report.new_mentions)

        if self.dry_run:
            for mention in new_mentions:
                self.preview_callback(mention)
            return report

        if new_mentions:
            dispatch = self.dispatcher.dispatch(new_mentions)
            report.sink_results = dispatch.results
            report.sinks_attempted = dispatch.sinks_attempted
            report.sinks_failed = dispatch.sinks_failed
            report.items_failed = dispatch.items_failed
            report.errors.extend(_sink_errors(dispatch.results))

        state.last_updated = self.clock()
        try:
            self.store.save(state)
        except StateStoreError as exc:
            return _abort(report, f"failed to save state: {exc}")

        return report


def _abort(report: RunReport, message: str) -> RunReport:
    logger.error("Run aborted: %s", message)
    report.status = RunStatus.ABORTED
    report.errors.append(message)
    return report


def _sink_errors(results: Sequence[SinkResult]) -> list[str]:
    errors: list[str] = []
    for result in results:
        if result.error is not None:
            errors.append(f"sink {result.sink}: {result.error}")
        elif result.delivery is not None and result.delivery.failed_ids:
            failed = ", ".join(result.delivery.failed_ids)
            errors.append(f"sink {result.sink}: failed to deliver {failed}")
    return errors


def _default_preview(mention: Mention) -> None:
    print(f"[DRY RUN] NEW MENTION: {mention.title or mention.url}")
    print(f"  URL: {mention.url}")
    print(f"  Source: {mention.source} ({mention.kind})")
    print(f"  Keyword: {mention.keyword}")
    if mention.author:
        print(f"  Author: {mention.author}")
    if mention.published_at:
        print(f"  Published: {mention.published_at.isoformat()}")
    print("")
