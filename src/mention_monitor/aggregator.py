from __future__ import annotations

import dataclasses
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

import requests

from mention_monitor.errors import SourceError
from mention_monitor.models import Mention
from mention_monitor.sources import Source
from mention_monitor.utils.datetime_utils import utc_now
from mention_monitor.utils.deadline import Deadline

logger = logging.getLogger(__name__)

_EXPECTED_SOURCE_ERRORS = (SourceError, requests.RequestException, ValueError)


@dataclass(slots=True)
class SourceResult:
    name: str
    count: int = 0
    error: str | None = None
    timed_out: bool = False
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class AggregateResult:
    candidates: list[Mention] = field(default_factory=list)
    results: list[SourceResult] = field(default_factory=list)
    dropped: int = 0

    @property
    def attempted(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)


_Outcome = tuple[list[Mention] | None, Exception | None, float]


class Aggregator:
    """Runs every source against the same keywords and deadline.

    Sources run on a bounded thread pool. Each task reports into its own
    slot and slots are merged in registration order once the pool is joined
    or the deadline passes, whichever comes first. Sources still running at
    the deadline contribute nothing.
    """

    def __init__(
        self,
        sources: Sequence[Source],
        *,
        max_workers: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.sources = list(sources)
        self.max_workers = max_workers
        self.clock = clock

    def collect(self, keywords: Sequence[str], deadline: Deadline) -> AggregateResult:
        if not self.sources:
            return AggregateResult()

        keyword_list = list(keywords)
        results = [SourceResult(name=_source_name(source)) for source in self.sources]
        slots: list[list[Mention] | None] = [None] * len(self.sources)

        executor = ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(self.sources)),
            thread_name_prefix="source",
        )
        try:
            futures: dict[Future[_Outcome], int] = {
                executor.submit(_run_source, source, keyword_list, deadline): index
                for index, source in enumerate(self.sources)
            }
            done, not_done = wait(futures, timeout=deadline.remaining())

            for future in not_done:
                future.cancel()
                result = results[futures[future]]
                result.timed_out = True
                result.error = "deadline exceeded"
                logger.warning("Source %s did not finish before the deadline", result.name)

            for future in done:
                index = futures[future]
                mentions, error, elapsed = future.result()
                result = results[index]
                result.elapsed = elapsed
                if error is not None:
                    result.error = str(error) or type(error).__name__
                    _log_source_failure(result.name, error)
                    continue
                slots[index] = mentions
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        aggregate = AggregateResult(results=results)
        discovered_at = self.clock()
        for result, mentions in zip(results, slots):
            if mentions is None:
                continue
            for candidate in mentions:
                if not _is_well_formed(candidate):
                    aggregate.dropped += 1
                    logger.warning(
                        "Dropping malformed candidate from %s: %r",
                        result.name,
                        getattr(candidate, "id", candidate),
                    )
                    continue
                aggregate.candidates.append(
                    dataclasses.replace(candidate, discovered_at=discovered_at)
                )
                result.count += 1
            logger.info("Source %s returned %d candidates", result.name, result.count)

        return aggregate


def _run_source(source: Source, keywords: list[str], deadline: Deadline) -> _Outcome:
    started = time.monotonic()
    try:
        mentions = list(source.collect(keywords, deadline))
    except Exception as exc:  # noqa: BLE001
        return None, exc, time.monotonic() - started
    return mentions, None, time.monotonic() - started


def _log_source_failure(name: str, error: Exception) -> None:
    if isinstance(error, _EXPECTED_SOURCE_ERRORS):
        logger.warning("Source %s failed: %s", name, error)
    else:
        logger.error("Source %s failed unexpectedly: %s", name, error, exc_info=error)


def _is_well_formed(candidate: object) -> bool:
    if not isinstance(candidate, Mention):
        return False
    return all(
        isinstance(value, str) and value.strip()
        for value in (candidate.id, candidate.url, candidate.source)
    )


def _source_name(source: Source) -> str:
    return str(getattr(source, "name", "") or type(source).__name__)
