from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence, runtime_checkable

from mention_monitor.models import Mention

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DeliveryResult:
    sink: str
    attempted: int = 0
    delivered: int = 0
    skipped: int = 0
    failed_ids: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def ok(self) -> bool:
        return not self.failed_ids


@runtime_checkable
class Sink(Protocol):
    name: str

    def send(self, mentions: Sequence[Mention]) -> DeliveryResult:
        """Deliver or persist a batch of newly accepted mentions, in order."""
        ...


def deliver_each(
    sink_name: str,
    mentions: Sequence[Mention],
    deliver: Callable[[Mention], bool | None],
) -> DeliveryResult:
    """Deliver mentions one at a time; a failed item never stops the rest.

    ``deliver`` returns ``False`` when the backend already holds the item,
    which is counted as skipped rather than delivered.
    """
    result = DeliveryResult(sink=sink_name)
    for mention in mentions:
        result.attempted += 1
        try:
            outcome = deliver(mention)
        except Exception as exc:  # noqa: BLE001
            result.failed_ids.append(mention.id)
            logger.warning("Sink %s failed to deliver %s: %s", sink_name, mention.id, exc)
            continue

        if outcome is False:
            result.skipped += 1
        else:
            result.delivered += 1

    return result
