from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

import requests

from mention_monitor.errors import SinkError
from mention_monitor.models import Mention
from mention_monitor.sinks import DeliveryResult, Sink

logger = logging.getLogger(__name__)

_EXPECTED_SINK_ERRORS = (SinkError, requests.RequestException)


@dataclass(slots=True)
class SinkResult:
    sink: str
    delivery: DeliveryResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and (self.delivery is None or self.delivery.ok)


@dataclass(slots=True)
class DispatchReport:
    results: list[SinkResult] = field(default_factory=list)

    @property
    def sinks_attempted(self) -> int:
        return len(self.results)

    @property
    def sinks_failed(self) -> int:
        return sum(1 for result in self.results if not result.ok)

    @property
    def items_failed(self) -> int:
        return sum(
            result.delivery.failed for result in self.results if result.delivery is not None
        )


class SinkDispatcher:
    """Hands the same ordered batch to every sink, independently."""

    def __init__(self, sinks: Sequence[Sink], *, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.sinks = list(sinks)
        self.max_workers = max_workers

    def dispatch(self, mentions: Sequence[Mention]) -> DispatchReport:
        if not self.sinks or not mentions:
            return DispatchReport()

        batch = list(mentions)
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(self.sinks)),
            thread_name_prefix="sink",
        ) as executor:
            futures = [executor.submit(_send, sink, batch) for sink in self.sinks]
            results = [future.result() for future in futures]

        for result in results:
            if result.error is not None:
                continue
            delivery = result.delivery
            if delivery is not None and delivery.failed_ids:
                logger.warning(
                    "Sink %s delivered %d/%d mentions; failed: %s",
                    result.sink,
                    delivery.delivered,
                    delivery.attempted,
                    ", ".join(delivery.failed_ids),
                )
            elif delivery is not None:
                logger.info(
                    "Sink %s delivered %d mentions (%d already present)",
                    result.sink,
                    delivery.delivered,
                    delivery.skipped,
                )

        return DispatchReport(results=results)


def _send(sink: Sink, batch: list[Mention]) -> SinkResult:
    name = str(getattr(sink, "name", "") or type(sink).__name__)
    try:
        delivery = sink.send(batch)
    except Exception as exc:  # noqa: BLE001
        ids = ", ".join(mention.id for mention in batch)
        if isinstance(exc, _EXPECTED_SINK_ERRORS):
            logger.warning("Sink %s failed for %s: %s", name, ids, exc)
        else:
            logger.error("Sink %s failed unexpectedly for %s: %s", name, ids, exc, exc_info=exc)
        return SinkResult(sink=name, error=str(exc) or type(exc).__name__)

    if delivery is None:
        delivery = DeliveryResult(sink=name, attempted=len(batch), delivered=len(batch))
    return SinkResult(sink=name, delivery=delivery)
